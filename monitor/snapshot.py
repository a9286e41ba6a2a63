"""Push snapshot contract and per-metric value extraction."""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .core import Sample, normalize_timestamp_ms

LOGGER = logging.getLogger(__name__)

BYTES_PER_MB = 1024 * 1024


class HostInfo(BaseModel):
    model_config = ConfigDict(extra="ignore")

    mem_total: float = 0
    swap_total: float = 0
    disk_total: float = 0
    gpu: List[str] = Field(default_factory=list)


class HostState(BaseModel):
    model_config = ConfigDict(extra="ignore")

    cpu: float = 0
    mem_used: float = 0
    swap_used: float = 0
    disk_used: float = 0
    net_in_speed: float = 0
    net_out_speed: float = 0
    tcp_conn_count: float = 0
    udp_conn_count: float = 0
    process_count: float = 0
    gpu: List[float] = Field(default_factory=list)


class ServerSnapshot(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = ""
    host: HostInfo = Field(default_factory=HostInfo)
    state: HostState = Field(default_factory=HostState)


class PushSnapshot(BaseModel):
    """One message of the push stream: every server's state at ``now``."""

    model_config = ConfigDict(extra="ignore")

    now: int
    servers: List[ServerSnapshot] = Field(default_factory=list)

    def find(self, server_id: int) -> Optional[ServerSnapshot]:
        for server in self.servers:
            if server.id == server_id:
                return server
        return None


def parse_message(message: Any) -> PushSnapshot:
    """Parse a raw push message (JSON text, mapping, or ``{"data": text}`` event)."""
    if isinstance(message, PushSnapshot):
        return message
    if isinstance(message, (str, bytes, bytearray)):
        return PushSnapshot.model_validate_json(message)
    if isinstance(message, Mapping) and isinstance(message.get("data"), (str, bytes, bytearray)):
        return PushSnapshot.model_validate_json(message["data"])
    return PushSnapshot.model_validate(message)


def _percent(used: float, total: float) -> float:
    return used / total * 100 if total > 0 else 0.0


@dataclass(frozen=True)
class MetricDefinition:
    """How one chart metric is read from a live snapshot and from history.

    ``query`` is the upstream metric name of the period query; history values
    go through ``convert_history`` so both sources share one unit.
    """

    key: str
    query: str
    unit: str
    live: Callable[[ServerSnapshot, int], Optional[float]]
    convert_history: Callable[[float, Optional[HostInfo]], float]


def _identity(value: float, host: Optional[HostInfo]) -> float:
    return float(value)


def _to_mb(value: float, host: Optional[HostInfo]) -> float:
    return float(value) / BYTES_PER_MB


def _percent_of(attr: str) -> Callable[[float, Optional[HostInfo]], float]:
    def convert(value: float, host: Optional[HostInfo]) -> float:
        total = getattr(host, attr) if host is not None else 0
        return _percent(float(value), total)

    return convert


def _gpu_usage(server: ServerSnapshot, index: int) -> Optional[float]:
    if 0 <= index < len(server.state.gpu):
        return float(server.state.gpu[index])
    return None


METRICS: Dict[str, MetricDefinition] = {
    "cpu": MetricDefinition("cpu", "cpu", "%", lambda s, _: s.state.cpu, _identity),
    "mem": MetricDefinition(
        "mem", "memory", "%", lambda s, _: _percent(s.state.mem_used, s.host.mem_total), _percent_of("mem_total")
    ),
    "swap": MetricDefinition(
        "swap", "swap", "%", lambda s, _: _percent(s.state.swap_used, s.host.swap_total), _percent_of("swap_total")
    ),
    "disk": MetricDefinition(
        "disk", "disk", "%", lambda s, _: _percent(s.state.disk_used, s.host.disk_total), _percent_of("disk_total")
    ),
    "net_in": MetricDefinition(
        "net_in", "net_in_speed", "MB/s", lambda s, _: s.state.net_in_speed / BYTES_PER_MB, _to_mb
    ),
    "net_out": MetricDefinition(
        "net_out", "net_out_speed", "MB/s", lambda s, _: s.state.net_out_speed / BYTES_PER_MB, _to_mb
    ),
    "tcp": MetricDefinition("tcp", "tcp_conn", "", lambda s, _: s.state.tcp_conn_count, _identity),
    "udp": MetricDefinition("udp", "udp_conn", "", lambda s, _: s.state.udp_conn_count, _identity),
    "process": MetricDefinition("process", "process_count", "", lambda s, _: s.state.process_count, _identity),
    "gpu": MetricDefinition("gpu", "gpu", "%", _gpu_usage, _identity),
}


def metric_definition(metric: str) -> MetricDefinition:
    try:
        return METRICS[metric]
    except KeyError as exc:
        raise ValueError(f"Unknown metric '{metric}'; expected one of {sorted(METRICS)}") from exc


# Two-field charts: primary metric first, its timestamps key the chart.
CHART_PAIRS: Dict[str, Tuple[str, str]] = {
    "memory": ("mem", "swap"),
    "network": ("net_in", "net_out"),
    "connections": ("tcp", "udp"),
}


def chart_pair(chart: str) -> Tuple[str, str]:
    try:
        return CHART_PAIRS[chart]
    except KeyError as exc:
        raise ValueError(f"Unknown chart '{chart}'; expected one of {sorted(CHART_PAIRS)}") from exc


def make_extractor(server_id: int, metric: str, *, gpu_index: int = 0) -> Callable[[Any], Optional[Sample]]:
    """Return ``message -> Sample | None`` for one server and metric.

    The sample timestamp is the snapshot's server time. Messages that do not
    mention the server, or fail to parse, yield ``None``.
    """
    definition = metric_definition(metric)

    def extract(message: Any) -> Optional[Sample]:
        try:
            snapshot = parse_message(message)
        except ValidationError as exc:
            LOGGER.warning("Dropping malformed push message: %s", exc.errors()[:1])
            return None
        server = snapshot.find(server_id)
        if server is None:
            return None
        value = definition.live(server, gpu_index)
        if value is None:
            return None
        return Sample(normalize_timestamp_ms(snapshot.now), float(value))

    return extract


class MessageBacklog:
    """Most recent push messages, newest first, as the transport hands them over."""

    def __init__(self, maxlen: int = 30) -> None:
        self._messages: Deque[Any] = deque(maxlen=maxlen)

    def push(self, message: Any) -> None:
        self._messages.appendleft(message)

    def latest(self) -> Optional[Any]:
        return self._messages[0] if self._messages else None

    def messages(self) -> List[Any]:
        return list(self._messages)

    def __len__(self) -> int:
        return len(self._messages)
