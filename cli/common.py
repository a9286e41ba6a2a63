from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterator, List, Optional

from rich.console import Console
from rich.table import Table

from monitor.core import WideFrame

from . import APP_ROOT

_CONSOLE = Console()
LOG_DIR = APP_ROOT / "logs" / "cli"


def console() -> Console:
    return _CONSOLE


def configure_logging(name: str) -> None:
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    log_path = LOG_DIR / f"{name}.log"
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(log_path, encoding="utf-8"),
            logging.StreamHandler(),
        ],
    )


def iter_jsonl(path: Path) -> Iterator[Any]:
    """Yield one decoded JSON document per non-empty line."""
    with path.open("r", encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                logging.getLogger(__name__).warning("Skipping %s:%d: %s", path, number, exc)


def frame_table(frame: WideFrame, title: Optional[str] = None, limit: Optional[int] = None) -> Table:
    table = Table(title=title)
    table.add_column("timestamp", justify="right")
    columns: List[str] = frame.columns
    for column in columns:
        table.add_column(column, justify="right")
    rows = frame.rows()
    if limit is not None:
        rows = rows[-limit:]
    for row in rows:
        cells = ["-" if row["values"][column] is None else f"{row['values'][column]:.2f}" for column in columns]
        table.add_row(str(row["timestamp"]), *cells)
    return table
