"""Packet-loss estimation from raw ping delays.

The estimate is derived from the delay sequence alone: very long delays are read
as timeouts and local jitter as a proxy for dropped pings. It is an
approximation for services whose history carries no up/down counters, not a
measured loss rate.
"""
from __future__ import annotations

import math
from typing import List, Optional, Sequence

import numpy as np

TIMEOUT_THRESHOLD_MS = 3000.0
EXTREME_DELAY_THRESHOLD_MS = 10000.0
SMOOTHING_ALPHA = 0.3
MIN_WINDOW = 3
MAX_WINDOW = 10


def window_size_for(length: int) -> int:
    return min(MAX_WINDOW, max(MIN_WINDOW, length // 10))


def _jitter_loss(delays: np.ndarray, index: int, window: int) -> float:
    """Loss contribution of delay variance around ``index``."""
    start = max(0, index - window // 2)
    end = min(len(delays), index + math.ceil(window / 2))
    local = delays[start:end]
    local = local[local > 0]
    if local.size <= 2:
        return 0.0

    mean = float(local.mean())
    if mean <= 0:
        return 0.0
    cv = float(local.std()) / mean

    loss = 0.0
    if cv > 0.8:
        loss = min(25.0, cv * 15)
    elif cv > 0.5:
        loss = min(10.0, cv * 8)
    elif cv > 0.3:
        loss = min(5.0, cv * 5)

    current = float(delays[index])
    if current > mean * 2.5:
        loss += min(15.0, (current / mean - 2.5) * 10)
    return loss


def _instant_loss(delays: np.ndarray, index: int, window: int) -> float:
    delay = float(delays[index])
    if math.isnan(delay) or delay == 0:
        return 100.0
    if delay >= EXTREME_DELAY_THRESHOLD_MS:
        return min(95.0, 60 + (delay - EXTREME_DELAY_THRESHOLD_MS) / 1000)
    if delay >= TIMEOUT_THRESHOLD_MS:
        return min(50.0, (delay - TIMEOUT_THRESHOLD_MS) / 200)
    return _jitter_loss(delays, index, window)


def estimate(delays: Sequence[Optional[float]]) -> List[float]:
    """Return one loss percentage in [0, 100] per delay, rounded to 2 decimals."""
    if len(delays) == 0:
        return []

    values = np.array([np.nan if delay is None else float(delay) for delay in delays], dtype="float64")
    window = window_size_for(len(values))

    rates: List[float] = []
    previous = 0.0
    for index in range(len(values)):
        loss = _instant_loss(values, index, window)
        if index > 0:
            loss = SMOOTHING_ALPHA * loss + (1 - SMOOTHING_ALPHA) * previous
        previous = max(0.0, min(100.0, loss))
        rates.append(previous)

    return [round(rate, 2) for rate in rates]


def loss_from_counters(up: Sequence[Optional[float]], down: Sequence[Optional[float]], length: int) -> List[float]:
    """Explicit loss percentage ``down / (up + down)`` from ping counters."""
    rates: List[float] = []
    for index in range(length):
        ok = up[index] if index < len(up) and up[index] is not None else 0
        failed = down[index] if index < len(down) and down[index] is not None else 0
        total = ok + failed
        rates.append(0.0 if total <= 0 else round(failed / total * 100, 2))
    return rates
