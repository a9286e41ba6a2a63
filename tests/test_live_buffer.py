"""Tests for the bounded live sample window."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from monitor.core import Sample
from monitor.live_buffer import BufferNotSeededError, LiveSampleBuffer
from tests.conftest import get_test_logger

logger = get_test_logger(__name__)
logger.info("Starting tests for live buffer")


def _extract(message: Dict[str, Any]) -> Optional[Sample]:
    if message.get("value") is None:
        return None
    return Sample(message["ts"], message["value"])


def _backlog(count: int) -> List[Dict[str, Any]]:
    # Newest first, as the push backlog stores messages.
    return [{"ts": index, "value": float(index)} for index in reversed(range(count))]


def test_seed_orders_backlog_chronologically_and_drops_missing() -> None:
    backlog = _backlog(5)
    backlog[2] = {"ts": 2, "value": None}
    buffer = LiveSampleBuffer("cpu", capacity=30)

    assert buffer.seed(backlog, _extract) is True

    assert buffer.seeded
    assert [sample.timestamp for sample in buffer.samples] == [0, 1, 3, 4]


def test_seed_truncates_to_capacity() -> None:
    buffer = LiveSampleBuffer("cpu", capacity=10)
    buffer.seed(_backlog(25), _extract)

    assert len(buffer) == 10
    assert buffer.samples[0].timestamp == 15
    assert buffer.samples[-1].timestamp == 24


def test_seed_is_noop_when_seeded_or_backlog_empty() -> None:
    buffer = LiveSampleBuffer("cpu")
    assert buffer.seed([], _extract) is False
    assert not buffer.seeded

    buffer.seed(_backlog(3), _extract)
    assert buffer.seed(_backlog(8), _extract) is False
    assert len(buffer) == 3


def test_append_before_seed_raises() -> None:
    buffer = LiveSampleBuffer("cpu")
    with pytest.raises(BufferNotSeededError):
        buffer.append(Sample(1, 1.0))


def test_append_keeps_last_capacity_samples() -> None:
    buffer = LiveSampleBuffer("cpu", capacity=30)
    buffer.seed(_backlog(5), _extract)

    for offset in range(35):
        buffer.append(Sample(100 + offset, float(offset)))

    assert len(buffer) == 30
    assert [sample.timestamp for sample in buffer.samples] == list(range(105, 135))


def test_first_append_into_empty_window_inserts_twice() -> None:
    buffer = LiveSampleBuffer("cpu")
    buffer.seed([{"ts": 1, "value": None}], _extract)
    assert buffer.seeded and len(buffer) == 0

    buffer.append(Sample(5, 2.0))
    assert buffer.samples == [Sample(5, 2.0), Sample(5, 2.0)]

    buffer.append(Sample(6, 3.0))
    assert len(buffer) == 3


def test_reset_clears_samples_and_seed_flag() -> None:
    buffer = LiveSampleBuffer("cpu")
    buffer.seed(_backlog(4), _extract)
    buffer.reset()

    assert len(buffer) == 0
    assert not buffer.seeded
    assert buffer.seed(_backlog(2), _extract) is True


def test_samples_property_returns_copy() -> None:
    buffer = LiveSampleBuffer("cpu")
    buffer.seed(_backlog(2), _extract)
    buffer.samples.clear()
    assert len(buffer) == 2


def test_capacity_must_hold_two_samples() -> None:
    with pytest.raises(ValueError):
        LiveSampleBuffer("cpu", capacity=1)
