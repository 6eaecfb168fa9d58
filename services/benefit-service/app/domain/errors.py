"""Typed failures raised by the benefit domain.

Every error carries its structured fields as attributes so callers can branch
on the exception type instead of parsing messages.
"""

from __future__ import annotations

from decimal import Decimal


class BenefitError(Exception):
    """Base class for all expected business failures."""


class AccountNotFound(BenefitError):
    """Raised when a referenced account does not exist."""

    def __init__(self, account_id: int, kind: str = "account") -> None:
        self.kind = kind
        self.account_id = account_id
        super().__init__(f"{kind} {account_id} not found")


class ValidationError(BenefitError):
    """Raised when input fields break the account constraints."""

    def __init__(self, errors: dict[str, str]) -> None:
        self.errors = dict(errors)
        summary = "; ".join(f"{field}: {reason}" for field, reason in self.errors.items())
        super().__init__(f"validation failed ({summary})")

    @classmethod
    def for_field(cls, field: str, reason: str) -> "ValidationError":
        return cls({field: reason})

    @property
    def field(self) -> str:
        return next(iter(self.errors))

    @property
    def reason(self) -> str:
        return self.errors[self.field]


class InvalidTransfer(BenefitError):
    """Raised for same-account transfers or non-positive amounts."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class InactiveAccount(BenefitError):
    """Raised when a transfer leg refers to a frozen account."""

    def __init__(self, account_id: int) -> None:
        self.account_id = account_id
        super().__init__(f"account {account_id} is inactive")


class InsufficientBalance(BenefitError):
    """Raised when the source account cannot cover the requested amount."""

    def __init__(self, account_id: int, current: Decimal, requested: Decimal) -> None:
        self.account_id = account_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"insufficient balance on account {account_id}: "
            f"current {current:.2f}, requested {requested:.2f}"
        )


class ConcurrencyConflict(BenefitError):
    """Raised when a write kept losing to concurrent modifications."""

    def __init__(self, account_id: int, attempts: int = 1) -> None:
        self.account_id = account_id
        self.attempts = attempts
        super().__init__(
            f"account {account_id} was modified concurrently; reload and try again"
        )


class ConflictError(Exception):
    """Store-level version mismatch on a conditional write.

    Managers translate this into :class:`ConcurrencyConflict` (or retry), so it
    never reaches API callers.
    """

    def __init__(self, account_id: int, expected: int, actual: int | None) -> None:
        self.account_id = account_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"version conflict on account {account_id}: expected {expected}, found {actual}"
        )
