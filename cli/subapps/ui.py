from __future__ import annotations

import typer

from ..common import console

ui_app = typer.Typer(help="Run the dashboard API server")


@ui_app.command("start")
def start_ui(
    host: str = typer.Option("127.0.0.1", "--host", "-h"),
    port: int = typer.Option(8090, "--port", "-p"),
) -> None:
    """Start the FastAPI server feeding the chart front-end."""
    from ui.server import start_ui as run_server

    console().print(f"Starting API server on http://{host}:{port}")

    try:
        run_server(host, port)
    except KeyboardInterrupt:
        console().print("Shutting down")
