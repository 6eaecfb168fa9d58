"""Error envelopes returned by HTTP services."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class ErrorBody(BaseModel):
    status: int
    message: str
    timestamp: datetime
    path: str


class ValidationErrorBody(ErrorBody):
    errors: dict[str, str] = Field(default_factory=dict)
