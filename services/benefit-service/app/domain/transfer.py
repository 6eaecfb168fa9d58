"""Transfer orchestration with optimistic concurrency control.

A transfer loads both accounts, checks the business rules against that
snapshot, stages the new balances on copies, and commits both legs with a
single all-or-nothing ``save_many``. A version conflict means another writer
touched one of the accounts after the snapshot was taken; the whole cycle is
then re-run from fresh reads, up to ``max_attempts`` times.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from .account import Account
from .contracts import TransferReceipt, TransferRequest
from .errors import AccountNotFound, BenefitError, ConcurrencyConflict, ConflictError
from .validation import (
    validate_credit,
    validate_sufficient_funds,
    validate_transfer,
    validate_transferable,
)
from ..metrics import TRANSFER_CONFLICTS, TRANSFERS
from ..repository import AccountStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3


class TransferOrchestrator:
    """Moves value between two accounts without holding locks across the operation."""

    def __init__(self, store: AccountStore, *, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self._store = store
        self._max_attempts = max_attempts

    def transfer(self, request: TransferRequest) -> TransferReceipt:
        """Commit the transfer or raise; nothing is left half-applied.

        Raises
        ------
        InvalidTransfer
            Same account on both sides or a non-positive amount, in which case
            no reads happen, or a credit that would overflow the target balance.
        AccountNotFound
            Either side is missing.
        InactiveAccount
            Either side is frozen.
        InsufficientBalance
            The source balance is below ``request.amount``.
        ConcurrencyConflict
            Every attempt lost a version race.
        """
        try:
            validate_transfer(request.from_id, request.to_id, request.amount)
            return self._run(request)
        except ConcurrencyConflict:
            TRANSFERS.labels(outcome="conflict").inc()
            raise
        except BenefitError as exc:
            TRANSFERS.labels(outcome="rejected").inc()
            logger.info(
                "transfer rejected from=%s to=%s amount=%s: %s",
                request.from_id,
                request.to_id,
                request.amount,
                exc,
            )
            raise

    def _run(self, request: TransferRequest) -> TransferReceipt:
        attempt = 0
        while True:
            attempt += 1
            source, target = self._load(request)

            validate_transferable(source)
            validate_transferable(target)
            validate_sufficient_funds(source, request.amount)
            validate_credit(target, request.amount)

            debited = replace(source, balance=source.balance - request.amount)
            credited = replace(target, balance=target.balance + request.amount)

            try:
                committed_source, committed_target = self._store.save_many([debited, credited])
            except ConflictError as exc:
                TRANSFER_CONFLICTS.inc()
                logger.info(
                    "transfer conflict on account %s (attempt %s/%s)",
                    exc.account_id,
                    attempt,
                    self._max_attempts,
                )
                if attempt >= self._max_attempts:
                    logger.warning(
                        "transfer from=%s to=%s gave up after %s conflicting attempts",
                        request.from_id,
                        request.to_id,
                        self._max_attempts,
                    )
                    raise ConcurrencyConflict(exc.account_id, attempts=attempt) from exc
                continue

            TRANSFERS.labels(outcome="committed").inc()
            logger.info(
                "transfer committed from=%s to=%s amount=%s attempts=%s",
                request.from_id,
                request.to_id,
                request.amount,
                attempt,
            )
            return TransferReceipt(
                source=committed_source,
                target=committed_target,
                amount=request.amount,
                attempts=attempt,
            )

    def _load(self, request: TransferRequest) -> tuple[Account, Account]:
        source = self._store.get(request.from_id)
        if source is None:
            raise AccountNotFound(request.from_id, kind="source account")
        target = self._store.get(request.to_id)
        if target is None:
            raise AccountNotFound(request.to_id, kind="target account")
        return source, target
