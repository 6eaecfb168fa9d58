"""Shared schema exports."""

from .account import BenefitAccount
from .errors import ErrorBody, ValidationErrorBody
from .transfer import TransferRequest, TransferResult

__all__ = [
    "BenefitAccount",
    "ErrorBody",
    "ValidationErrorBody",
    "TransferRequest",
    "TransferResult",
]
