"""Bounded per-metric buffer for samples arriving on the push stream."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Sequence

from .core import Sample

LOGGER = logging.getLogger(__name__)

DEFAULT_CAPACITY = 30

RawMessage = Any
Extractor = Callable[[RawMessage], Optional[Sample]]


class BufferNotSeededError(RuntimeError):
    """Raised when a live sample is appended before the backlog seeded the buffer."""


@dataclass
class LiveWindow:
    metric_key: str
    capacity: int = DEFAULT_CAPACITY
    samples: List[Sample] = field(default_factory=list)
    seeded: bool = False


class LiveSampleBuffer:
    """FIFO window of live samples for one metric.

    The window is seeded once from the push backlog, then grows by
    :meth:`append` until ``capacity`` and evicts its oldest sample afterwards.
    """

    def __init__(self, metric_key: str, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 2:
            raise ValueError("Live buffer capacity must be at least 2")
        self.window = LiveWindow(metric_key=metric_key, capacity=capacity)

    @property
    def metric_key(self) -> str:
        return self.window.metric_key

    @property
    def capacity(self) -> int:
        return self.window.capacity

    @property
    def seeded(self) -> bool:
        return self.window.seeded

    @property
    def samples(self) -> List[Sample]:
        return list(self.window.samples)

    def __len__(self) -> int:
        return len(self.window.samples)

    def seed(self, history: Sequence[RawMessage], extract: Extractor) -> bool:
        """Load the backlog (newest message first) in chronological order.

        Returns ``True`` when the buffer was seeded by this call. Calls on an
        already seeded buffer, or with an empty backlog, change nothing.
        """
        if self.window.seeded or not history:
            return False
        chronological = [sample for sample in (extract(message) for message in reversed(history)) if sample is not None]
        self.window.samples = chronological[-self.window.capacity :]
        self.window.seeded = True
        LOGGER.debug(
            "Seeded live window %s with %d of %d backlog messages",
            self.window.metric_key,
            len(self.window.samples),
            len(history),
        )
        return True

    def append(self, sample: Sample) -> None:
        if not self.window.seeded:
            raise BufferNotSeededError(f"Live window '{self.window.metric_key}' has not been seeded")
        samples = self.window.samples
        if not samples:
            # A lone point renders as a dot; two identical points draw a segment.
            samples.extend([sample, sample])
            return
        samples.append(sample)
        if len(samples) > self.window.capacity:
            del samples[0]

    def reset(self) -> None:
        self.window.samples = []
        self.window.seeded = False
