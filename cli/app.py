from __future__ import annotations

import typer

from .common import configure_logging
from .subapps.pipeline import pipeline_app
from .subapps.ui import ui_app

app = typer.Typer(help="servermon command line interface")
app.add_typer(pipeline_app, name="pipeline")
app.add_typer(ui_app, name="ui")


@app.callback()
def main() -> None:
    configure_logging("cli")


if __name__ == "__main__":
    app()
