"""Domain-level request contracts shared by multiple layers."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .account import Account


@dataclass(slots=True)
class AccountDraft:
    """Inputs required to create a benefit account."""

    name: str
    balance: Decimal
    description: str | None = None
    active: bool = True


@dataclass(slots=True)
class AccountPatch:
    """Partial update; ``None`` fields are left untouched.

    ``expected_version`` lets a client that read the account earlier assert it
    is still updating the same revision.
    """

    name: str | None = None
    description: str | None = None
    balance: Decimal | None = None
    active: bool | None = None
    expected_version: int | None = None


@dataclass(slots=True)
class TransferRequest:
    """Move ``amount`` from one account to another."""

    from_id: int
    to_id: int
    amount: Decimal


@dataclass(slots=True)
class TransferReceipt:
    """Committed state of both legs after a successful transfer."""

    source: Account
    target: Account
    amount: Decimal
    attempts: int
