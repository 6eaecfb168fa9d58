"""Transfer request and result contracts."""

from __future__ import annotations

from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from .account import BenefitAccount


class TransferRequest(BaseModel):
    """Accepts snake_case keys as well as the camelCase ones older clients send."""

    model_config = ConfigDict(populate_by_name=True)

    from_id: int = Field(..., alias="fromId")
    to_id: int = Field(..., alias="toId")
    amount: Decimal


class TransferResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    source: BenefitAccount
    target: BenefitAccount
    amount: Decimal
    attempts: int = 1
