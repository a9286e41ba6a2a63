"""Dashboard session: the pipelines of every open chart plus the push backlog."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .core import NamedSeries
from .pipeline import MetricPipeline
from .settings import Settings
from .snapshot import HostInfo, MessageBacklog, chart_pair, make_extractor, metric_definition, parse_message
from .sources import DashboardClient

LOGGER = logging.getLogger(__name__)

DELAY_KEY = "delay"
SERVICE_KEY = "service"


class DashboardSession:
    """Owns one :class:`MetricPipeline` per (server, chart).

    Push messages are recorded in the backlog first and then fanned out to
    every pipeline, so a pipeline entering live mode seeds from a backlog that
    already holds the newest message.
    """

    def __init__(self, settings: Settings, client: Optional[DashboardClient] = None) -> None:
        self.settings = settings
        self.client = client if client is not None else DashboardClient.from_config(settings.client)
        self.backlog = MessageBacklog(settings.backlog_size)
        self._pipelines: Dict[Tuple[int, str], MetricPipeline] = {}

    def host_info(self, server_id: int) -> Optional[HostInfo]:
        """Host totals from the newest push message, used to scale history."""
        latest = self.backlog.latest()
        if latest is None:
            return None
        server = parse_message(latest).find(server_id)
        return server.host if server is not None else None

    def metric_pipeline(self, server_id: int, metric: str, *, gpu_index: int = 0) -> MetricPipeline:
        metric_definition(metric)
        key = (server_id, metric if metric != "gpu" else f"gpu:{gpu_index}")
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            def fetch(period: str) -> List[NamedSeries]:
                series = self.client.fetch_server_metric(server_id, metric, period, host=self.host_info(server_id))
                return [series]

            pipeline = MetricPipeline(
                metric,
                fetch=fetch,
                extract=make_extractor(server_id, metric, gpu_index=gpu_index),
                config=self.settings.pipeline,
                with_packet_loss=False,
            )
            self._pipelines[key] = pipeline
        return pipeline

    def chart_pipelines(self, server_id: int, chart: str) -> Tuple[MetricPipeline, MetricPipeline]:
        """The two metric pipelines behind a two-field chart, primary first."""
        primary, secondary = chart_pair(chart)
        return self.metric_pipeline(server_id, primary), self.metric_pipeline(server_id, secondary)

    def delay_pipeline(self, server_id: int) -> MetricPipeline:
        key = (server_id, DELAY_KEY)
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            pipeline = MetricPipeline(
                DELAY_KEY,
                fetch=lambda period: self.client.fetch_server_delays(server_id, period),
                config=self.settings.pipeline,
            )
            self._pipelines[key] = pipeline
        return pipeline

    def service_pipeline(self, service_id: int) -> MetricPipeline:
        """Delay history of one service, loss taken from its up/down counters."""
        key = (service_id, SERVICE_KEY)
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            pipeline = MetricPipeline(
                SERVICE_KEY,
                fetch=lambda period: self.client.fetch_service_history(service_id, period),
                config=self.settings.pipeline,
            )
            self._pipelines[key] = pipeline
        return pipeline

    def ingest(self, message: Any) -> bool:
        """Record one push message and apply it to every live pipeline."""
        try:
            parse_message(message)
        except ValidationError as exc:
            LOGGER.warning("Rejected push message: %s", exc.errors()[:1])
            return False
        self.backlog.push(message)
        history = self.backlog.messages()
        for pipeline in self._pipelines.values():
            pipeline.on_push(message, history)
        return True

    def __len__(self) -> int:
        return len(self._pipelines)
