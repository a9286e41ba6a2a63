"""Time-series acquisition, alignment and smoothing for server monitoring charts."""
from __future__ import annotations

from .core import NamedSeries, Sample, WideFrame, normalize_timestamp_ms
from .live_buffer import BufferNotSeededError, LiveSampleBuffer, LiveWindow
from .pipeline import LIVE, PERIODS, FetchRequest, MetricPipeline, restrict_mode
from .smoothing import RobustSmoother, SmoothingState

__all__ = [
    "BufferNotSeededError",
    "FetchRequest",
    "LIVE",
    "LiveSampleBuffer",
    "LiveWindow",
    "MetricPipeline",
    "NamedSeries",
    "PERIODS",
    "RobustSmoother",
    "Sample",
    "SmoothingState",
    "WideFrame",
    "normalize_timestamp_ms",
    "restrict_mode",
]
