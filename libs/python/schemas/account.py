"""Account DTOs shared across services."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict


class BenefitAccount(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None = None
    balance: Decimal
    active: bool = True
    version: int
    created_at: datetime
    updated_at: datetime
