"""Pydantic models for the dashboard API responses."""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SeriesPoint(BaseModel):
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")
    value: Optional[float] = Field(None, description="Numeric value (missing observations as null)")


class SeriesPayload(BaseModel):
    name: str
    unit: str = ""
    data: List[SeriesPoint] = Field(default_factory=list)


class SeriesResponse(BaseModel):
    series: List[SeriesPayload]
    meta: dict = Field(default_factory=dict)


class FrameRow(BaseModel):
    timestamp: int = Field(..., description="Unix timestamp in milliseconds")
    values: Dict[str, Optional[float]] = Field(default_factory=dict)


class SeriesSummaryModel(BaseModel):
    last_delay: Optional[float]
    min_delay: float
    max_delay: float
    avg_packet_loss: Optional[float]


class FrameResponse(BaseModel):
    series: List[str]
    rows: List[FrameRow] = Field(default_factory=list)
    summary: Dict[str, SeriesSummaryModel] = Field(default_factory=dict)
    meta: dict = Field(default_factory=dict)


class PushAck(BaseModel):
    accepted: bool
    backlog: int
