"""Pure validation rules shared by the CRUD manager and the transfer orchestrator."""

from __future__ import annotations

from decimal import Decimal

from .account import Account
from .errors import InactiveAccount, InsufficientBalance, InvalidTransfer, ValidationError

NAME_MAX_LENGTH = 100
DESCRIPTION_MAX_LENGTH = 255
BALANCE_MAX_DIGITS = 15
BALANCE_DECIMAL_PLACES = 2
CENT = Decimal("0.01")


def _decimal_shape_error(value: Decimal) -> str | None:
    """Return a message when ``value`` does not fit NUMERIC(15, 2)."""
    if not value.is_finite():
        return "must be a finite number"
    integer_digits = max(value.adjusted() + 1, 0)
    if integer_digits > BALANCE_MAX_DIGITS - BALANCE_DECIMAL_PLACES:
        return f"must have at most {BALANCE_MAX_DIGITS - BALANCE_DECIMAL_PLACES} integer digits"
    # 10.500 is still cent-precise; only non-zero sub-cent digits are rejected
    if value != value.quantize(CENT):
        return f"must have at most {BALANCE_DECIMAL_PLACES} decimal places"
    return None


def validate_account_draft(
    name: str | None,
    description: str | None,
    balance: Decimal | None,
) -> None:
    """Check the shape of an account before it is created or saved.

    Every failing field is reported at once.

    Raises
    ------
    ValidationError
        With a field -> message mapping of all violations.
    """
    errors: dict[str, str] = {}

    if name is None or not name.strip():
        errors["name"] = "must not be blank"
    elif len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"must be at most {NAME_MAX_LENGTH} characters"

    if description is not None and len(description) > DESCRIPTION_MAX_LENGTH:
        errors["description"] = f"must be at most {DESCRIPTION_MAX_LENGTH} characters"

    if balance is None:
        errors["balance"] = "must not be null"
    elif not isinstance(balance, Decimal):
        errors["balance"] = "must be a decimal amount"
    else:
        shape_error = _decimal_shape_error(balance)
        if shape_error:
            errors["balance"] = shape_error
        elif balance < 0:
            errors["balance"] = "must not be negative"

    if errors:
        raise ValidationError(errors)


def validate_transfer(from_id: int | None, to_id: int | None, amount: Decimal | None) -> None:
    """Reject transfers that can never succeed, before touching the store."""
    if from_id is None or to_id is None or amount is None:
        raise InvalidTransfer("source, target and amount are required")
    if from_id == to_id:
        raise InvalidTransfer("cannot transfer to the same account")
    if not amount.is_finite() or amount <= 0:
        raise InvalidTransfer("transfer amount must be positive")
    shape_error = _decimal_shape_error(amount)
    if shape_error:
        raise InvalidTransfer(f"transfer amount {shape_error}")


def validate_transferable(account: Account) -> None:
    if not account.active:
        raise InactiveAccount(account.id)


def validate_sufficient_funds(account: Account, amount: Decimal) -> None:
    if account.balance < amount:
        raise InsufficientBalance(account.id, account.balance, amount)


def validate_credit(account: Account, amount: Decimal) -> None:
    """Reject a credit whose resulting balance would not fit NUMERIC(15, 2)."""
    if _decimal_shape_error(account.balance + amount):
        raise InvalidTransfer(f"transfer would exceed the maximum balance of account {account.id}")
