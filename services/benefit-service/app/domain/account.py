from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(slots=True)
class Account:
    """Aggregate root for a benefit account and its optimistic-lock version."""

    id: int
    name: str
    balance: Decimal
    created_at: datetime
    updated_at: datetime
    description: str | None = None
    active: bool = True
    version: int = 0
