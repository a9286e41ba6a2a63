from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer

from monitor import alignment, packet_loss
from monitor.pipeline import LIVE, MetricPipeline, PERIODS
from monitor.settings import load_settings
from monitor.snapshot import make_extractor, metric_definition
from monitor.sources import DashboardClient

from ..common import console, frame_table, iter_jsonl

pipeline_app = typer.Typer(help="Inspect pipeline output without the web front-end")


@pipeline_app.command("replay")
def replay(
    source: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSONL file of push messages, oldest first"),
    server_id: int = typer.Option(..., "--server-id", "-s"),
    metric: str = typer.Option("cpu", "--metric", "-m"),
    backlog: int = typer.Option(10, min=0, help="Leading messages used as the seeding backlog"),
    peak_cut: bool = typer.Option(False, "--peak-cut/--no-peak-cut"),
    config: Optional[Path] = typer.Option(None, help="Optional config override"),
) -> None:
    """Feed recorded push messages through a live pipeline and print its window."""
    try:
        metric_definition(metric)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--metric") from exc

    settings = load_settings(config)
    pipeline = MetricPipeline(metric, extract=make_extractor(server_id, metric), config=settings.pipeline)
    pipeline.set_peak_cut(peak_cut)

    messages = list(iter_jsonl(source))
    seed, stream = messages[:backlog], messages[backlog:]
    pipeline.set_mode(LIVE, backlog=list(reversed(seed)))
    for message in stream:
        pipeline.on_push(message)

    frame = pipeline.frame()
    console().print(frame_table(frame, title=f"server {server_id} / {metric} (live)"))
    console().print(f"{len(frame)} samples retained from {len(messages)} messages")


def _check_period(period: str) -> None:
    if period not in PERIODS:
        raise typer.BadParameter(f"expected one of {', '.join(PERIODS)}", param_hint="--period")


def _print_delays(pipeline: MetricPipeline, title: str, limit: int) -> None:
    pipeline.refresh()
    if not pipeline.historical:
        console().print("[yellow]No delay data returned[/]")
        raise typer.Exit(code=1)

    console().print(frame_table(pipeline.frame(), title=title, limit=limit))
    for name, stats in alignment.summarize(pipeline.historical).items():
        loss = "-" if stats.avg_packet_loss is None else f"{stats.avg_packet_loss:.2f}%"
        last = "-" if stats.last_delay is None else f"{stats.last_delay:.0f}"
        console().print(
            f"  [cyan]{name}[/]: last {last} ms, "
            f"min {stats.min_delay:.0f}, max {stats.max_delay:.0f}, avg loss {loss}"
        )


@pipeline_app.command("delay")
def delay(
    server_id: int = typer.Option(..., "--server-id", "-s"),
    period: str = typer.Option("1d", "--period", "-p", help="One of 1d, 7d, 30d"),
    active: List[str] = typer.Option([], "--active", "-a", help="Restrict to these monitors"),
    peak_cut: bool = typer.Option(False, "--peak-cut/--no-peak-cut"),
    limit: int = typer.Option(20, min=1, help="Rows to print"),
    config: Optional[Path] = typer.Option(None),
) -> None:
    """Fetch monitor delays for a server and print the aligned frame."""
    _check_period(period)
    settings = load_settings(config)
    client = DashboardClient.from_config(settings.client)
    pipeline = MetricPipeline(
        "delay",
        fetch=lambda selected: client.fetch_server_delays(server_id, selected),
        config=settings.pipeline,
    )
    pipeline.select(active)
    pipeline.set_peak_cut(peak_cut)
    pipeline.set_mode(period)
    _print_delays(pipeline, f"server {server_id} delays ({period})", limit)


@pipeline_app.command("service")
def service(
    service_id: int = typer.Option(..., "--service-id", "-s"),
    period: str = typer.Option("1d", "--period", "-p", help="One of 1d, 7d, 30d"),
    peak_cut: bool = typer.Option(False, "--peak-cut/--no-peak-cut"),
    limit: int = typer.Option(20, min=1, help="Rows to print"),
    config: Optional[Path] = typer.Option(None),
) -> None:
    """Fetch one service's delay history with counter-based packet loss."""
    _check_period(period)
    settings = load_settings(config)
    client = DashboardClient.from_config(settings.client)
    pipeline = MetricPipeline(
        "service",
        fetch=lambda selected: client.fetch_service_history(service_id, selected),
        config=settings.pipeline,
    )
    pipeline.set_peak_cut(peak_cut)
    pipeline.set_mode(period)
    _print_delays(pipeline, f"service {service_id} delays ({period})", limit)


@pipeline_app.command("loss")
def loss(delays: List[float] = typer.Argument(..., help="Ping delays in ms, 0 for a timeout")) -> None:
    """Print the packet loss estimated from a delay sequence."""
    for delay_ms, rate in zip(delays, packet_loss.estimate(delays)):
        console().print(f"{delay_ms:>10.2f} ms  {rate:6.2f}%")
