"""HTTP access to the historical query API.

Every fetch goes through :meth:`DashboardClient._get_json`; transport errors,
undecodable bodies and ``success: false`` payloads are logged there and turned
into empty results so that no partial frame reaches the pipeline.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .core import NamedSeries, normalize_timestamp_seconds
from .packet_loss import loss_from_counters
from .snapshot import HostInfo, metric_definition

LOGGER = logging.getLogger(__name__)

PERIOD_DAYS: Dict[str, int] = {"1d": 1, "7d": 7, "30d": 30}


def check_period(period: str) -> str:
    if period not in PERIOD_DAYS:
        raise ValueError(f"Unknown period '{period}'; expected one of {sorted(PERIOD_DAYS)}")
    return period


def period_window(period: str, now: float) -> Tuple[int, int]:
    """Return ``(start, end)`` epoch seconds covering ``period`` up to ``now``."""
    days = PERIOD_DAYS[check_period(period)]
    end = normalize_timestamp_seconds(now)
    return end - days * 86400, end


def _payload_data(payload: Optional[Mapping[str, Any]]) -> Any:
    if not payload or not payload.get("success"):
        return None
    return payload.get("data")


def _padded(values: Optional[Sequence[Any]], length: int) -> List[Any]:
    values = list(values or [])[:length]
    return values + [None] * (length - len(values))


def parse_service_history(payload: Optional[Mapping[str, Any]], service_id: int) -> List[NamedSeries]:
    """One delay series from a ``/service/{id}/history`` payload.

    Packet loss is taken from the up/down counters when the payload has them.
    A payload with unreadable timestamps or values yields no series.
    """
    history = _payload_data(payload)
    if not isinstance(history, Mapping):
        return []
    timestamps = list(history.get("timestamps") or [])
    if not timestamps:
        return []

    name = str(history.get("service_name") or "").strip() or f"Service {service_id}"
    length = len(timestamps)
    up = history.get("up")
    down = history.get("down")
    try:
        loss = None
        if up or down:
            loss = loss_from_counters(_padded(up, length), _padded(down, length), length)
        series = NamedSeries.from_arrays(
            name,
            timestamps,
            _padded(history.get("avg_delay"), length),
            series_id=history.get("service_id", service_id),
            packet_loss=loss,
        )
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Discarding malformed history of service %s: %s", service_id, exc)
        return []
    return [series]


def parse_monitor_list(payload: Optional[Mapping[str, Any]]) -> List[NamedSeries]:
    """Delay series of every monitor probing one server.

    One malformed monitor entry discards the whole list.
    """
    monitors = _payload_data(payload)
    if not isinstance(monitors, list):
        return []
    series: List[NamedSeries] = []
    seen: set[str] = set()
    for entry in monitors:
        if not isinstance(entry, Mapping):
            continue
        created_at = list(entry.get("created_at") or [])
        name = str(entry.get("monitor_name") or "").strip() or f"Monitor {entry.get('monitor_id')}"
        if name in seen:
            LOGGER.warning("Skipping duplicate monitor '%s'", name)
            continue
        seen.add(name)
        explicit = entry.get("packet_loss")
        try:
            series.append(
                NamedSeries.from_arrays(
                    name,
                    created_at,
                    _padded(entry.get("avg_delay"), len(created_at)),
                    series_id=entry.get("monitor_id"),
                    packet_loss=_padded(explicit, len(created_at)) if explicit else None,
                )
            )
        except (TypeError, ValueError) as exc:
            LOGGER.warning("Discarding monitor list, entry '%s' is malformed: %s", name, exc)
            return []
    return series


def parse_metric_points(
    payload: Optional[Mapping[str, Any]],
    name: str,
    convert: Callable[[float], float] = float,
) -> NamedSeries:
    """Series from a metric-period payload of ``{ts, value}`` points."""
    data = _payload_data(payload)
    points = data.get("data_points") if isinstance(data, Mapping) else None
    if not points:
        return NamedSeries(name)
    timestamps: List[int] = []
    values: List[Optional[float]] = []
    try:
        for point in points:
            if not isinstance(point, Mapping) or point.get("ts") is None:
                continue
            raw = point.get("value")
            timestamps.append(point["ts"])
            values.append(None if raw is None else convert(float(raw)))
        return NamedSeries.from_arrays(name, timestamps, values)
    except (TypeError, ValueError) as exc:
        LOGGER.warning("Discarding malformed %s history: %s", name, exc)
        return NamedSeries(name)


class DashboardClient:
    """Thin ``requests`` client for the dashboard's historical endpoints."""

    SERVICE_HISTORY_PATH = "/api/v1/service/{service_id}/history"
    SERVER_MONITORS_PATH = "/api/v1/service/{server_id}"
    SERVER_METRICS_PATH = "/api/v1/server/{server_id}/metrics"

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 10.0,
        api_token: Optional[str] = None,
        verify_tls: bool = True,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s
        self.api_token = api_token
        self.verify_tls = verify_tls
        self.session = session if session is not None else requests.Session()
        self._clock = clock

    @classmethod
    def from_config(cls, config: Any, *, session: Optional[requests.Session] = None) -> "DashboardClient":
        return cls(
            config.base_url,
            timeout_s=config.timeout_s,
            api_token=config.api_token,
            verify_tls=config.verify_tls,
            session=session,
        )

    def _headers(self) -> Dict[str, str]:
        if self.api_token:
            return {"Authorization": f"Bearer {self.api_token}"}
        return {}

    def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        url = f"{self.base_url}{path}"
        try:
            response = self.session.get(
                url,
                params=params,
                headers=self._headers(),
                timeout=self.timeout_s,
                verify=self.verify_tls,
            )
            response.raise_for_status()
            payload = response.json()
        except requests.RequestException as exc:
            LOGGER.warning("Request to %s failed: %s", url, exc)
            return None
        except ValueError as exc:
            LOGGER.warning("Invalid JSON from %s: %s", url, exc)
            return None

        if not isinstance(payload, dict):
            LOGGER.warning("Unexpected payload type %s from %s", type(payload).__name__, url)
            return None
        if payload.get("error"):
            LOGGER.warning("Upstream error from %s: %s", url, payload["error"])
            return None
        if not payload.get("success"):
            LOGGER.info("Upstream reported no data for %s", url)
        return payload

    def fetch_service_history(self, service_id: int, period: str) -> List[NamedSeries]:
        start, end = period_window(period, self._clock())
        payload = self._get_json(
            self.SERVICE_HISTORY_PATH.format(service_id=service_id),
            {"start": start, "end": end},
        )
        return parse_service_history(payload, service_id)

    def fetch_server_delays(self, server_id: int, period: str) -> List[NamedSeries]:
        check_period(period)
        payload = self._get_json(
            self.SERVER_MONITORS_PATH.format(server_id=server_id),
            {"period": period},
        )
        return parse_monitor_list(payload)

    def fetch_server_metric(
        self,
        server_id: int,
        metric: str,
        period: str,
        *,
        host: Optional[HostInfo] = None,
    ) -> NamedSeries:
        definition = metric_definition(metric)
        check_period(period)
        payload = self._get_json(
            self.SERVER_METRICS_PATH.format(server_id=server_id),
            {"metric": definition.query, "period": period},
        )
        return parse_metric_points(
            payload,
            metric,
            lambda value: definition.convert_history(value, host),
        )
