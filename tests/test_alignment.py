"""Tests for timestamp alignment of named series."""

from __future__ import annotations

import math

import pandas as pd
import pytest

from monitor import alignment
from monitor.core import NamedSeries, Sample
from tests.conftest import get_test_logger
from tests.helpers import build_delay_series

logger = get_test_logger(__name__)
logger.info("Starting tests for alignment module")


def test_align_disjoint_timestamps_fills_nulls() -> None:
    first = NamedSeries.from_arrays("a", [1000, 3000], [10.0, 30.0], packet_loss=[0.0, 0.0])
    second = NamedSeries.from_arrays("b", [2000, 4000, 5000], [20.0, 40.0, 50.0], packet_loss=[1.0, 1.0, 1.0])

    frame = alignment.align([first, second])

    assert len(frame) == 5
    assert frame.series == ("a", "b")
    rows = frame.rows()
    assert [row["timestamp"] for row in rows] == [1_000_000, 2_000_000, 3_000_000, 4_000_000, 5_000_000]
    for row in rows:
        assert set(row["values"]) == {"a", "a_packet_loss", "b", "b_packet_loss"}
        assert (row["values"]["a"] is None) != (row["values"]["b"] is None)
    assert rows[1]["values"]["a"] is None
    assert rows[1]["values"]["b"] == 20.0
    assert rows[1]["values"]["b_packet_loss"] == 1.0


def test_align_is_order_independent() -> None:
    series = [
        build_delay_series("lhr", [30, 31, None, 33], series_id=2),
        build_delay_series("fra", [12, 0, 14], start_ms=1_704_067_230_000, series_id=1),
        build_delay_series("nyc", [80, 82, 5000, 81, 80]),
    ]

    forward = alignment.align(series)
    backward = alignment.align(list(reversed(series)))

    assert forward.equals(backward)
    assert forward.series == ("fra", "lhr", "nyc")
    pd.testing.assert_frame_equal(forward.data, backward.data)


def test_align_duplicate_timestamp_later_sample_wins() -> None:
    series = NamedSeries(
        "ping",
        (Sample(1_000_000, 1.0), Sample(2_000_000, 2.0), Sample(1_000_000, 9.0)),
    )

    frame = alignment.align([series], with_packet_loss=False)

    assert frame.timestamps == [1_000_000, 2_000_000]
    assert frame.column("ping") == [9.0, 2.0]


def test_align_rejects_duplicate_names() -> None:
    with pytest.raises(ValueError):
        alignment.align([build_delay_series("dup", [1.0]), build_delay_series("dup", [2.0])])


def test_align_estimates_loss_when_not_supplied() -> None:
    frame = alignment.align([build_delay_series("edge", [0, 0, 0])])
    assert frame.column("edge_packet_loss") == [100.0, 100.0, 100.0]


def test_align_empty_inputs() -> None:
    assert len(alignment.align([])) == 0
    frame = alignment.align([NamedSeries("idle")])
    assert len(frame) == 0
    assert frame.series == ("idle",)


def test_group_and_narrow() -> None:
    explicit = NamedSeries.from_arrays("a", [1, 2], [5.0, 6.0], packet_loss=[None, 2.5])
    other = build_delay_series("b", [1.0, 2.0, 3.0])

    grouped = alignment.group([explicit, other])
    assert set(grouped) == {"a", "b"}
    assert list(grouped["a"].columns) == ["avg_delay", "packet_loss"]

    narrowed = alignment.narrow([explicit, other], "a")
    assert narrowed.series == ("avg_delay",)
    assert narrowed.column("avg_delay") == [5.0, 6.0]
    assert narrowed.column("packet_loss") == [0.0, 2.5]
    assert narrowed.metadata["series_name"] == "a"

    with pytest.raises(ValueError):
        alignment.narrow([explicit], "missing")


def test_combine_uses_primary_timestamps() -> None:
    memory = NamedSeries.from_arrays("mem", [10, 20, 30], [40.0, 41.0, 42.0])
    swap = NamedSeries.from_arrays("swap", [20, 40], [5.0, 6.0])

    frame = alignment.combine(memory, swap)

    assert frame.timestamps == [10_000, 20_000, 30_000]
    assert frame.column("swap") == [0.0, 5.0, 0.0]


def test_summarize_reports_selector_statistics() -> None:
    series = NamedSeries.from_arrays("a", [1, 2, 3], [10.0, None, 30.0], packet_loss=[0.0, 10.0, 20.0])

    summary = alignment.summarize([series])["a"]

    assert summary.last_delay == 30.0
    assert summary.min_delay == 10.0
    assert summary.max_delay == 30.0
    assert math.isclose(summary.avg_packet_loss, 10.0)

    empty = alignment.summarize([NamedSeries("idle")])["idle"]
    assert empty.last_delay is None
    assert empty.min_delay == 0.0
    assert empty.avg_packet_loss is None


@pytest.mark.parametrize("loss_like_id", [2, 0])
def test_align_rejects_name_shadowing_loss_column(loss_like_id: int) -> None:
    series = [
        build_delay_series("a", [10.0, 11.0, 12.0], series_id=1),
        build_delay_series("a_packet_loss", [500.0, 600.0, 700.0], series_id=loss_like_id),
    ]
    with pytest.raises(ValueError):
        alignment.align(series)

    frame = alignment.align(series, with_packet_loss=False)
    assert frame.column("a_packet_loss") == [500.0, 600.0, 700.0]
