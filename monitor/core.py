"""Core data model shared by the metric pipeline."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

# Epoch values below 10^12 are seconds (10^12 ms is September 2001).
MS_THRESHOLD = 1_000_000_000_000

LOSS_SUFFIX = "_packet_loss"
SINGLE_SERIES_KEY = "avg_delay"
PACKET_LOSS_KEY = "packet_loss"
INDEX_NAME = "timestamp"


def normalize_timestamp_ms(timestamp: float) -> int:
    """Return ``timestamp`` in milliseconds, treating values below 10^12 as seconds."""
    value = int(timestamp)
    if value < MS_THRESHOLD:
        return value * 1000
    return value


def normalize_timestamp_seconds(timestamp: float) -> int:
    """Return ``timestamp`` in seconds, treating values above 10^12 as milliseconds."""
    value = int(timestamp)
    if value > MS_THRESHOLD:
        return value // 1000
    return value


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    return isinstance(value, float) and math.isnan(value)


def to_optional_float(value: Any) -> Optional[float]:
    if is_missing(value):
        return None
    number = float(value)
    if math.isnan(number):
        return None
    return number


def _timestamp_index(values: Iterable[int]) -> pd.Index:
    return pd.Index(list(values), dtype="int64", name=INDEX_NAME)


@dataclass(frozen=True)
class Sample:
    timestamp: int
    value: Optional[float] = None


@dataclass(frozen=True)
class NamedSeries:
    """An immutable, named sequence of samples.

    ``series_id`` is the upstream monitor id used to order columns and
    ``packet_loss`` an explicit loss signal aligned with ``samples``.
    """

    name: str
    samples: Tuple[Sample, ...] = ()
    series_id: Optional[int] = None
    packet_loss: Optional[Tuple[Optional[float], ...]] = None

    def __post_init__(self) -> None:
        if self.packet_loss is not None and len(self.packet_loss) != len(self.samples):
            raise ValueError(
                f"Series '{self.name}' has {len(self.samples)} samples "
                f"but {len(self.packet_loss)} packet loss values"
            )

    @classmethod
    def from_arrays(
        cls,
        name: str,
        timestamps: Sequence[float],
        values: Sequence[Any],
        *,
        series_id: Optional[int] = None,
        packet_loss: Optional[Sequence[Any]] = None,
    ) -> "NamedSeries":
        samples = tuple(
            Sample(normalize_timestamp_ms(ts), to_optional_float(value))
            for ts, value in zip(timestamps, values)
        )
        loss = None
        if packet_loss is not None:
            loss = tuple(to_optional_float(value) for value in packet_loss)[: len(samples)]
        return cls(name=name, samples=samples, series_id=series_id, packet_loss=loss)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def timestamps(self) -> List[int]:
        return [sample.timestamp for sample in self.samples]

    @property
    def values(self) -> List[Optional[float]]:
        return [sample.value for sample in self.samples]

    def to_series(self, values: Optional[Sequence[Optional[float]]] = None) -> pd.Series:
        """Return ``values`` (default: the sample values) indexed by timestamp.

        When a timestamp repeats, the sample with the higher input index wins.
        """
        raw = self.values if values is None else values
        series = pd.Series(
            [np.nan if value is None else value for value in raw],
            index=_timestamp_index(self.timestamps),
            dtype="float64",
            name=self.name,
        )
        series = series[~series.index.duplicated(keep="last")]
        return series.sort_index(kind="stable")


@dataclass(eq=False)
class WideFrame:
    """Timestamp-indexed table with one column per series.

    Missing observations are NaN inside ``data`` and ``None`` in :meth:`rows`.
    ``series`` lists the primary series columns, in display order; companion
    columns (packet loss) are present in ``data`` but not in ``series``.
    """

    data: pd.DataFrame
    series: Tuple[str, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, series: Sequence[str] = ()) -> "WideFrame":
        data = pd.DataFrame(index=_timestamp_index([]), columns=list(series), dtype="float64")
        return cls(data, tuple(series))

    @classmethod
    def from_samples(cls, name: str, samples: Sequence[Sample]) -> "WideFrame":
        """Build a single-column frame, keeping repeated timestamps as separate rows."""
        data = pd.DataFrame(
            {name: [np.nan if sample.value is None else sample.value for sample in samples]},
            index=_timestamp_index(sample.timestamp for sample in samples),
            dtype="float64",
        )
        return cls(data, (name,))

    def __len__(self) -> int:
        return len(self.data)

    @property
    def timestamps(self) -> List[int]:
        return [int(ts) for ts in self.data.index]

    @property
    def columns(self) -> List[str]:
        return [str(column) for column in self.data.columns]

    def column(self, name: str) -> List[Optional[float]]:
        return [None if math.isnan(value) else float(value) for value in self.data[name].to_numpy(dtype="float64")]

    def rows(self) -> List[Dict[str, Any]]:
        columns = self.columns
        values = self.data.to_numpy(dtype="float64")
        records: List[Dict[str, Any]] = []
        for ts, row in zip(self.timestamps, values.tolist()):
            records.append(
                {
                    "timestamp": ts,
                    "values": {name: (None if math.isnan(cell) else cell) for name, cell in zip(columns, row)},
                }
            )
        return records

    def equals(self, other: "WideFrame") -> bool:
        return self.series == other.series and self.data.equals(other.data)
