"""Tests for delay-derived packet loss estimation."""

from __future__ import annotations

import numpy as np
import pytest

from monitor import packet_loss
from tests.conftest import get_test_logger

logger = get_test_logger(__name__)
logger.info("Starting tests for packet loss module")


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_estimate_length_and_bounds(seed: int) -> None:
    """Output mirrors the input length and stays within [0, 100]."""
    rng = np.random.default_rng(seed)
    delays = rng.choice([0.0, 15.0, 40.0, 250.0, 4200.0, 25000.0], size=57).tolist()
    delays[5] = None

    rates = packet_loss.estimate(delays)

    assert len(rates) == len(delays)
    assert all(0 <= rate <= 100 for rate in rates)


def test_estimate_timeouts_dominate() -> None:
    assert packet_loss.estimate([0, 0, 0]) == [100.0, 100.0, 100.0]
    assert packet_loss.estimate([None, float("nan")]) == [100.0, 100.0]


def test_estimate_steady_delays_near_zero() -> None:
    rates = packet_loss.estimate([50, 52, 51, 53, 50, 52, 51, 53, 50, 52])
    assert all(rate < 1 for rate in rates)


def test_estimate_empty() -> None:
    assert packet_loss.estimate([]) == []


def test_estimate_threshold_branches() -> None:
    # Single samples take the raw branch value (no smoothing at index 0).
    assert packet_loss.estimate([3000]) == [0.0]
    assert packet_loss.estimate([5000]) == [10.0]
    assert packet_loss.estimate([20000]) == [70.0]
    assert packet_loss.estimate([100000]) == [95.0]


def test_estimate_ewma_blends_previous_output() -> None:
    rates = packet_loss.estimate([0, 5000])
    # 0.3 * 10 + 0.7 * 100
    assert rates == [100.0, 73.0]


def test_estimate_jitter_and_spike() -> None:
    delays = [20, 20, 20, 20, 200, 20, 20, 20, 20, 20]
    rates = packet_loss.estimate(delays)
    assert rates[:3] == [0.0, 0.0, 0.0]
    # The spike raises the jitter estimate while it is inside the local window.
    assert 0.0 < rates[3] < rates[4] < rates[5]
    assert rates[7] < rates[6] < rates[5]


def test_window_size_is_clamped() -> None:
    assert packet_loss.window_size_for(5) == 3
    assert packet_loss.window_size_for(60) == 6
    assert packet_loss.window_size_for(1000) == 10


def test_loss_from_counters() -> None:
    assert packet_loss.loss_from_counters([9, 0, 3], [1, 0, None], 3) == [10.0, 0.0, 0.0]
    assert packet_loss.loss_from_counters([2], [1], 2) == [33.33, 0.0]
