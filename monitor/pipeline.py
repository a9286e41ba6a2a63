"""Per-metric pipeline switching between live and historical display modes.

The pipeline reacts to two kinds of events, each handled to completion:

* a push message (:meth:`MetricPipeline.on_push`), applied in arrival order
  to the live window;
* a completed historical fetch (:meth:`MetricPipeline.complete_fetch`),
  accepted only when it answers the latest request of the current mode.

Fetches themselves happen outside: :meth:`MetricPipeline.set_mode` hands out a
:class:`FetchRequest` that the caller resolves with :meth:`MetricPipeline.load`
on whatever executor it likes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from . import alignment
from .core import SINGLE_SERIES_KEY, NamedSeries, WideFrame
from .live_buffer import Extractor, LiveSampleBuffer
from .settings import PipelineConfig
from .smoothing import RobustSmoother

LOGGER = logging.getLogger(__name__)

LIVE = "live"
PERIODS: Tuple[str, ...] = ("1d", "7d", "30d")
MODES: Tuple[str, ...] = (LIVE,) + PERIODS
ANONYMOUS_MODES: Tuple[str, ...] = (LIVE, "1d")

HistoricalFetch = Callable[[str], List[NamedSeries]]


def validate_mode(mode: str) -> str:
    if mode not in MODES:
        raise ValueError(f"Unknown display mode '{mode}'; expected one of {list(MODES)}")
    return mode


def restrict_mode(mode: str, authenticated: bool) -> str:
    """Access policy applied by callers: anonymous users get live data or one day."""
    mode = validate_mode(mode)
    if authenticated or mode in ANONYMOUS_MODES:
        return mode
    LOGGER.debug("Coercing period %s to 1d for anonymous caller", mode)
    return "1d"


@dataclass(frozen=True)
class FetchRequest:
    sequence: int
    period: str


class MetricPipeline:
    """Acquisition, alignment and smoothing for one chart.

    ``fetch`` loads a period from the historical API; ``extract`` reads one
    sample from a push message. A pipeline without ``extract`` is
    historical-only.
    """

    def __init__(
        self,
        metric_key: str,
        *,
        fetch: Optional[HistoricalFetch] = None,
        extract: Optional[Extractor] = None,
        config: Optional[PipelineConfig] = None,
        with_packet_loss: Optional[bool] = None,
    ) -> None:
        self.metric_key = metric_key
        self.config = config or PipelineConfig()
        self.buffer = LiveSampleBuffer(metric_key, self.config.live_capacity)
        self.smoother = RobustSmoother.from_config(self.config)
        self.with_packet_loss = self.config.derive_packet_loss if with_packet_loss is None else with_packet_loss
        self.active_series: Tuple[str, ...] = ()
        self._fetch = fetch
        self._extract = extract
        self._mode: Optional[str] = None
        self._historical: List[NamedSeries] = []
        self._pending: Optional[FetchRequest] = None
        self._sequence = 0

    @property
    def mode(self) -> Optional[str]:
        return self._mode

    @property
    def supports_live(self) -> bool:
        return self._extract is not None

    @property
    def pending(self) -> Optional[FetchRequest]:
        return self._pending

    @property
    def historical(self) -> List[NamedSeries]:
        return list(self._historical)

    def set_mode(self, mode: str, backlog: Sequence[Any] = ()) -> Optional[FetchRequest]:
        """Switch display mode; returns the fetch to perform for historical modes.

        Entering live mode resets the live window and seeds it from
        ``backlog`` (newest message first). Any historical mode, including the
        current one, starts a new request and invalidates earlier ones.
        """
        mode = validate_mode(mode)
        previous = self._mode

        if mode == LIVE:
            if self._extract is None:
                raise ValueError(f"Pipeline '{self.metric_key}' has no live source")
            self._mode = LIVE
            self._historical = []
            self._pending = None
            if previous != LIVE:
                self.buffer.reset()
                self.buffer.seed(backlog, self._extract)
            return None

        if self._fetch is None:
            raise ValueError(f"Pipeline '{self.metric_key}' has no historical source")
        self._mode = mode
        self._historical = []
        self._sequence += 1
        self._pending = FetchRequest(self._sequence, mode)
        LOGGER.debug("%s: %s -> %s (request %d)", self.metric_key, previous, mode, self._sequence)
        return self._pending

    def load(self, request: FetchRequest) -> List[NamedSeries]:
        """Perform the fetch for ``request``; touches no pipeline state."""
        if self._fetch is None:
            raise ValueError(f"Pipeline '{self.metric_key}' has no historical source")
        return list(self._fetch(request.period))

    def complete_fetch(self, request: FetchRequest, series: Iterable[NamedSeries]) -> bool:
        """Accept a fetch result unless a newer request or a mode change superseded it."""
        if request != self._pending or request.period != self._mode:
            LOGGER.info(
                "Ignoring stale %s result for %s (request %d)",
                request.period,
                self.metric_key,
                request.sequence,
            )
            return False
        self._historical = list(series)
        self._pending = None
        return True

    def refresh(self) -> bool:
        """Fetch the current historical period synchronously."""
        if self._mode is None or self._mode == LIVE:
            return False
        request = self._pending or self.set_mode(self._mode)
        return self.complete_fetch(request, self.load(request))

    def on_push(self, message: Any, backlog: Optional[Sequence[Any]] = None) -> bool:
        """Apply one push message; returns ``True`` when the live window changed.

        Until the window is seeded the message (or ``backlog``, which should
        already contain it) seeds it instead of being appended.
        """
        if self._mode != LIVE or self._extract is None:
            return False
        if not self.buffer.seeded:
            return self.buffer.seed(backlog or [message], self._extract)
        sample = self._extract(message)
        if sample is None:
            return False
        self.buffer.append(sample)
        return True

    def select(self, active_series: Iterable[str]) -> None:
        self.active_series = tuple(dict.fromkeys(active_series))

    def set_peak_cut(self, enabled: bool) -> None:
        self.smoother.enabled = enabled

    def smoother_for(self, peak_cut: Optional[bool] = None) -> RobustSmoother:
        """The pipeline's smoother, or a copy toggled to ``peak_cut`` for one call."""
        if peak_cut is None or peak_cut == self.smoother.enabled:
            return self.smoother
        return RobustSmoother(enabled=peak_cut, window_size=self.smoother.window_size, alpha=self.smoother.alpha)

    def current_series(self) -> NamedSeries:
        """The single series named after ``metric_key`` in the current mode."""
        if self._mode == LIVE:
            return NamedSeries(self.metric_key, tuple(self.buffer.samples))
        for item in self._historical:
            if item.name == self.metric_key:
                return item
        return NamedSeries(self.metric_key)

    def _base_frame(self, active: Tuple[str, ...]) -> WideFrame:
        if self._mode == LIVE:
            return WideFrame.from_samples(self.metric_key, self.buffer.samples)
        if self._mode is None:
            return WideFrame.empty()
        if len(active) == 1:
            selected = active[0]
            if any(item.name == selected for item in self._historical):
                return alignment.narrow(self._historical, selected)
            return WideFrame.empty((SINGLE_SERIES_KEY,))
        return alignment.align(self._historical, with_packet_loss=self.with_packet_loss)

    def frame(
        self,
        active_series: Optional[Iterable[str]] = None,
        *,
        peak_cut: Optional[bool] = None,
    ) -> WideFrame:
        """Current output for the rendering layer, peak cut applied when enabled.

        ``active_series`` and ``peak_cut`` override the pipeline's own selection
        and toggle for this call only.
        """
        active = self.active_series if active_series is None else tuple(dict.fromkeys(active_series))
        base = self._base_frame(active)
        base.metadata.setdefault("mode", self._mode)
        return self.smoother_for(peak_cut).smooth(base, None if self._mode == LIVE else active)


def combined_frame(
    primary: MetricPipeline,
    secondary: MetricPipeline,
    *,
    peak_cut: Optional[bool] = None,
) -> WideFrame:
    """Two-field chart (memory+swap, upload+download) keyed on ``primary`` timestamps."""
    frame = alignment.combine(primary.current_series(), secondary.current_series())
    frame.metadata["mode"] = primary.mode
    return primary.smoother_for(peak_cut).smooth(frame)
