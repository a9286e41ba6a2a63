"""Time alignment of named delay and metric series."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd

from . import packet_loss
from .core import (
    INDEX_NAME,
    LOSS_SUFFIX,
    PACKET_LOSS_KEY,
    SINGLE_SERIES_KEY,
    NamedSeries,
    WideFrame,
)


@dataclass
class SeriesSummary:
    last_delay: Optional[float]
    min_delay: float
    max_delay: float
    avg_packet_loss: Optional[float]


def _sort_key(item: NamedSeries) -> tuple:
    # Series without an upstream id go last, then by name.
    return (item.series_id is None, item.series_id if item.series_id is not None else 0, item.name)


def order_series(series: Iterable[NamedSeries]) -> List[NamedSeries]:
    ordered = sorted(series, key=_sort_key)
    seen: set[str] = set()
    for item in ordered:
        if item.name in seen:
            raise ValueError(f"Duplicate series name '{item.name}'")
        seen.add(item.name)
    return ordered


def loss_values(series: NamedSeries) -> List[Optional[float]]:
    """Explicit loss signal when present, otherwise the delay-derived estimate."""
    if series.packet_loss is not None:
        return list(series.packet_loss)
    return list(packet_loss.estimate(series.values))


def union_index(columns: Iterable[pd.Series]) -> pd.Index:
    """Return the sorted union of all timestamp indices."""
    union = pd.Index([], dtype="int64", name=INDEX_NAME)
    for column in columns:
        union = union.union(column.index)
    union = union.sort_values()
    union.name = INDEX_NAME
    return union


def align(series: Sequence[NamedSeries], *, with_packet_loss: bool = True) -> WideFrame:
    """Merge ``series`` into one frame over the union of their timestamps.

    Cells without an observation at a timestamp are null. With
    ``with_packet_loss`` each series gains a ``<name>_packet_loss`` column.
    """
    ordered = order_series(series)
    if not ordered:
        return WideFrame.empty()

    names = {item.name for item in ordered}
    if with_packet_loss:
        for item in ordered:
            loss_name = f"{item.name}{LOSS_SUFFIX}"
            if loss_name in names:
                raise ValueError(f"Series name '{loss_name}' collides with the packet loss column of '{item.name}'")

    columns: Dict[str, pd.Series] = {}
    for item in ordered:
        columns[item.name] = item.to_series()
        if with_packet_loss:
            columns[f"{item.name}{LOSS_SUFFIX}"] = item.to_series(loss_values(item))

    index = union_index(columns.values())
    data = pd.DataFrame(
        {name: column.reindex(index) for name, column in columns.items()},
        index=index,
        dtype="float64",
    )
    return WideFrame(
        data,
        tuple(item.name for item in ordered),
        {"packet_loss": with_packet_loss},
    )


def group(series: Sequence[NamedSeries]) -> Dict[str, pd.DataFrame]:
    """Per-series ``avg_delay``/``packet_loss`` tables for per-series charting."""
    grouped: Dict[str, pd.DataFrame] = {}
    for item in order_series(series):
        grouped[item.name] = pd.DataFrame(
            {
                SINGLE_SERIES_KEY: item.to_series(),
                PACKET_LOSS_KEY: item.to_series(loss_values(item)),
            }
        )
    return grouped


def narrow(series: Sequence[NamedSeries], name: str) -> WideFrame:
    """Frame for a single selected series with flat ``avg_delay``/``packet_loss`` keys."""
    grouped = group(series)
    if name not in grouped:
        raise ValueError(f"Unknown series '{name}'")
    data = grouped[name].copy()
    data[PACKET_LOSS_KEY] = data[PACKET_LOSS_KEY].fillna(0.0)
    data.index.name = INDEX_NAME
    return WideFrame(data, (SINGLE_SERIES_KEY,), {"series_name": name})


def combine(primary: NamedSeries, secondary: NamedSeries, *, fill: float = 0.0) -> WideFrame:
    """Two-field frame keyed on ``primary`` timestamps (memory+swap, upload+download)."""
    if primary.name == secondary.name:
        raise ValueError(f"Cannot combine series '{primary.name}' with itself")
    first = primary.to_series()
    second = secondary.to_series().reindex(first.index).fillna(fill)
    data = pd.DataFrame({primary.name: first, secondary.name: second}, dtype="float64")
    data.index.name = INDEX_NAME
    return WideFrame(data, (primary.name, secondary.name))


def summarize(series: Sequence[NamedSeries]) -> Dict[str, SeriesSummary]:
    """Last, minimum and maximum delay plus average packet loss per series."""
    summaries: Dict[str, SeriesSummary] = {}
    for item in order_series(series):
        delays = np.array([np.nan if value is None else value for value in item.values], dtype="float64")
        observed = delays[~np.isnan(delays)]
        losses = [value for value in loss_values(item) if value is not None and not math.isnan(value)]
        last = item.samples[-1].value if item.samples else None
        summaries[item.name] = SeriesSummary(
            last_delay=last,
            min_delay=float(observed.min()) if observed.size else 0.0,
            max_delay=float(observed.max()) if observed.size else 0.0,
            avg_packet_loss=(sum(losses) / len(losses)) if losses else None,
        )
    return summaries
