"""Shared helper utilities for the servermon test-suite."""

from .data import (
    build_delay_series,
    build_metric_payload,
    build_monitor_payload,
    build_push_message,
    build_service_history_payload,
    write_jsonl,
)
from .mocks import FakeHttpResponse, FakeSession

__all__ = [
    "build_delay_series",
    "build_metric_payload",
    "build_monitor_payload",
    "build_push_message",
    "build_service_history_payload",
    "write_jsonl",
    "FakeHttpResponse",
    "FakeSession",
]
