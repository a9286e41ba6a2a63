"""FastAPI application exposing pipeline output to the chart front-end."""

from __future__ import annotations

import asyncio
import logging
from typing import List, Optional

from fastapi import APIRouter, Body, FastAPI, HTTPException, Query, Request
from fastapi.concurrency import run_in_threadpool
from uvicorn import Config, Server

from monitor import alignment
from monitor.core import WideFrame
from monitor.pipeline import LIVE, MetricPipeline, combined_frame, restrict_mode
from monitor.session import DashboardSession
from monitor.settings import load_settings, setup_logging
from monitor.snapshot import chart_pair, metric_definition

from .schemas import FrameResponse, FrameRow, PushAck, SeriesPayload, SeriesPoint, SeriesResponse, SeriesSummaryModel

LOGGER = logging.getLogger(__name__)

router = APIRouter()


def get_session(request: Request) -> DashboardSession:
    return request.app.state.session


def is_authenticated(request: Request) -> bool:
    # Authentication happens upstream; a forwarded Authorization header marks a signed-in user.
    return bool(request.headers.get("authorization"))


def parse_active(active: str) -> List[str]:
    return [name.strip() for name in active.split(",") if name.strip()]


async def activate(session: DashboardSession, pipeline: MetricPipeline, mode: str) -> None:
    """Move ``pipeline`` to ``mode``, running any historical fetch off the event loop."""
    if mode == LIVE:
        pipeline.set_mode(LIVE, backlog=session.backlog.messages())
        return
    request = pipeline.set_mode(mode)
    series = await run_in_threadpool(pipeline.load, request)
    pipeline.complete_fetch(request, series)


def _resolve_mode(request: Request, period: str) -> str:
    try:
        return restrict_mode(period, is_authenticated(request))
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def frame_to_series(frame: WideFrame, unit: str) -> List[SeriesPayload]:
    payloads: List[SeriesPayload] = []
    timestamps = frame.timestamps
    for column in frame.columns:
        points = [SeriesPoint(timestamp=ts, value=value) for ts, value in zip(timestamps, frame.column(column))]
        payloads.append(SeriesPayload(name=column, unit=unit, data=points))
    return payloads


@router.get("/api/health")
async def api_health() -> dict:
    return {"status": "ok"}


@router.post("/api/push", response_model=PushAck)
async def api_push(request: Request, message: dict = Body(...)) -> PushAck:
    session = get_session(request)
    accepted = session.ingest(message)
    if not accepted:
        raise HTTPException(status_code=422, detail="Malformed push message")
    return PushAck(accepted=True, backlog=len(session.backlog))


def _series_response(frame: WideFrame, unit: str) -> SeriesResponse:
    return SeriesResponse(
        series=frame_to_series(frame, unit),
        meta={
            "mode": frame.metadata.get("mode"),
            "rows": len(frame),
            "peak_cut": bool(frame.metadata.get("peak_cut", False)),
        },
    )


@router.get("/api/servers/{server_id}/metrics/{metric}", response_model=SeriesResponse)
async def api_metric(
    request: Request,
    server_id: int,
    metric: str,
    period: str = Query(LIVE),
    peak_cut: Optional[bool] = Query(None),
    gpu_index: int = Query(0, ge=0),
) -> SeriesResponse:
    try:
        definition = metric_definition(metric)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    mode = _resolve_mode(request, period)

    session = get_session(request)
    pipeline = session.metric_pipeline(server_id, metric, gpu_index=gpu_index)
    await activate(session, pipeline, mode)
    return _series_response(pipeline.frame(peak_cut=peak_cut), definition.unit)


@router.get("/api/servers/{server_id}/charts/{chart}", response_model=SeriesResponse)
async def api_chart(
    request: Request,
    server_id: int,
    chart: str,
    period: str = Query(LIVE),
    peak_cut: Optional[bool] = Query(None),
) -> SeriesResponse:
    """Two-field charts: memory+swap, upload+download, tcp+udp connections."""
    try:
        primary_key, _ = chart_pair(chart)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    mode = _resolve_mode(request, period)

    session = get_session(request)
    primary, secondary = session.chart_pipelines(server_id, chart)
    await activate(session, primary, mode)
    await activate(session, secondary, mode)
    frame = combined_frame(primary, secondary, peak_cut=peak_cut)
    return _series_response(frame, metric_definition(primary_key).unit)


async def _delay_frame(
    request: Request,
    pipeline: MetricPipeline,
    period: str,
    active: str,
    peak_cut: Optional[bool],
) -> FrameResponse:
    mode = _resolve_mode(request, period)
    if mode == LIVE:
        raise HTTPException(status_code=422, detail="Delay charts have no live mode")

    selection = list(dict.fromkeys(parse_active(active)))
    await activate(get_session(request), pipeline, mode)

    frame = pipeline.frame(selection, peak_cut=peak_cut)
    summary = {
        name: SeriesSummaryModel(**vars(stats))
        for name, stats in alignment.summarize(pipeline.historical).items()
    }
    return FrameResponse(
        series=list(frame.series),
        rows=[FrameRow(**row) for row in frame.rows()],
        summary=summary,
        meta={
            "mode": frame.metadata.get("mode"),
            "active": selection,
            "peak_cut": bool(frame.metadata.get("peak_cut", False)),
        },
    )


@router.get("/api/servers/{server_id}/delay", response_model=FrameResponse)
async def api_server_delay(
    request: Request,
    server_id: int,
    period: str = Query("1d"),
    active: str = Query(""),
    peak_cut: Optional[bool] = Query(None),
) -> FrameResponse:
    pipeline = get_session(request).delay_pipeline(server_id)
    return await _delay_frame(request, pipeline, period, active, peak_cut)


@router.get("/api/services/{service_id}/delay", response_model=FrameResponse)
async def api_service_delay(
    request: Request,
    service_id: int,
    period: str = Query("1d"),
    peak_cut: Optional[bool] = Query(None),
) -> FrameResponse:
    pipeline = get_session(request).service_pipeline(service_id)
    return await _delay_frame(request, pipeline, period, "", peak_cut)


def create_app(session: Optional[DashboardSession] = None) -> FastAPI:
    application = FastAPI(title="servermon")
    application.state.session = session if session is not None else DashboardSession(load_settings())
    application.include_router(router)
    return application


app = create_app()


def start_ui(host: str, port: int) -> None:
    """Start the API server via uvicorn, logging to the configured file."""

    setup_logging(log_file=app.state.session.settings.log_file)
    config = Config(app=app, host=host, port=port, log_level="info")
    server = Server(config=config)
    asyncio.run(server.serve())
