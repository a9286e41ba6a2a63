"""Outlier-resistant "peak cut" smoothing for wide frames.

Each row from ``window_size - 1`` onward is replaced by a robust estimate of
its trailing window: values further than three scaled MADs from the window
median, or above three times the median, are dropped and the survivors are
averaged with an EWMA. The per-window estimates are blended with a second EWMA
carried across rows.

The ``v <= 3 * median`` ceiling only rejects high values. That suits latency,
where spikes are noise and dips are not, but it is not a general-purpose
outlier rule.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

import numpy as np

from .core import SINGLE_SERIES_KEY, WideFrame

if TYPE_CHECKING:
    from .settings import PipelineConfig

LOGGER = logging.getLogger(__name__)

MAD_SCALE = 1.4826
OUTLIER_MADS = 3.0
MEDIAN_CEILING = 3.0
DEFAULT_WINDOW_SIZE = 11
DEFAULT_ALPHA = 0.3


@dataclass
class SmoothingState:
    per_series_ewma: Dict[str, float] = field(default_factory=dict)

    def blend(self, key: str, value: float, alpha: float) -> float:
        previous = self.per_series_ewma.get(key)
        current = value if previous is None else alpha * value + (1 - alpha) * previous
        self.per_series_ewma[key] = current
        return current


def robust_estimate(values: np.ndarray, alpha: float) -> float:
    """EWMA of the window values that survive the MAD and ceiling tests.

    Falls back to the window median when every value is rejected.
    """
    median = float(np.median(values))
    mad = float(np.median(np.abs(values - median))) * MAD_SCALE
    keep = (np.abs(values - median) <= OUTLIER_MADS * mad) & (values <= MEDIAN_CEILING * median)
    survivors = values[keep]
    if survivors.size == 0:
        return median
    ewma = float(survivors[0])
    for value in survivors[1:]:
        ewma = alpha * float(value) + (1 - alpha) * ewma
    return ewma


def keys_in_scope(frame: WideFrame, active_series: Optional[Iterable[str]]) -> List[str]:
    active = list(dict.fromkeys(active_series or ()))
    if len(active) == 1:
        keys = [SINGLE_SERIES_KEY]
    elif active:
        keys = active
    else:
        keys = list(frame.series)
    return [key for key in keys if key in frame.data.columns]


class RobustSmoother:
    """Peak-cut filter; a disabled smoother hands frames back untouched."""

    def __init__(
        self,
        *,
        enabled: bool = True,
        window_size: int = DEFAULT_WINDOW_SIZE,
        alpha: float = DEFAULT_ALPHA,
    ) -> None:
        if window_size < 1:
            raise ValueError("Smoothing window must hold at least one row")
        if not 0 < alpha <= 1:
            raise ValueError("Smoothing alpha must be within (0, 1]")
        self.enabled = enabled
        self.window_size = window_size
        self.alpha = alpha

    @classmethod
    def from_config(cls, config: "PipelineConfig", *, enabled: Optional[bool] = None) -> "RobustSmoother":
        return cls(
            enabled=config.force_peak_cut if enabled is None else enabled,
            window_size=config.window_size,
            alpha=config.alpha,
        )

    def smooth(
        self,
        frame: WideFrame,
        active_series: Optional[Iterable[str]] = None,
        *,
        state: Optional[SmoothingState] = None,
    ) -> WideFrame:
        if not self.enabled:
            return frame

        state = state if state is not None else SmoothingState()
        keys = keys_in_scope(frame, active_series)
        data = frame.data.copy()
        width = self.window_size

        for key in keys:
            source = frame.data[key].to_numpy(dtype="float64")
            smoothed = source.copy()
            for index in range(width - 1, len(source)):
                window = source[index - width + 1 : index + 1]
                values = window[~np.isnan(window)]
                if values.size == 0:
                    continue
                smoothed[index] = state.blend(key, robust_estimate(values, self.alpha), self.alpha)
            data[key] = smoothed

        LOGGER.debug("Peak cut applied to %d rows across %s", len(data), keys)
        metadata = dict(frame.metadata)
        metadata["peak_cut"] = True
        return WideFrame(data, frame.series, metadata)
