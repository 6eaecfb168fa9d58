"""Benefit account workflows: create, read, update and soft delete."""

from __future__ import annotations

import logging
from dataclasses import replace

from .account import Account
from .contracts import AccountDraft, AccountPatch
from .errors import AccountNotFound, ConcurrencyConflict, ConflictError
from .validation import validate_account_draft
from ..repository import AccountStore

logger = logging.getLogger(__name__)


class BenefitService:
    """CRUD workflows over an :class:`~app.repository.AccountStore`."""

    def __init__(self, store: AccountStore) -> None:
        """Store dependencies used to read and persist accounts."""
        self._store = store

    def create(self, draft: AccountDraft) -> Account:
        """Validate the draft and persist it as a new active (by default) account."""
        validate_account_draft(draft.name, draft.description, draft.balance)
        account = self._store.create(draft)
        logger.info("account created id=%s name=%s", account.id, account.name)
        return account

    def find_by_id(self, account_id: int) -> Account:
        account = self._store.get(account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account

    def find_all(self) -> list[Account]:
        return self._store.list()

    def find_all_active(self) -> list[Account]:
        return self._store.list_active()

    def update(self, account_id: int, patch: AccountPatch) -> Account:
        """Apply ``patch`` on top of the stored account using its current version.

        Raises
        ------
        AccountNotFound
            When no account has ``account_id``.
        ValidationError
            When the patched account breaks a field constraint.
        ConcurrencyConflict
            When ``patch.expected_version`` is stale or another writer got in
            between the read and the save.
        """
        current = self.find_by_id(account_id)
        if patch.expected_version is not None and patch.expected_version != current.version:
            raise ConcurrencyConflict(account_id)

        updated = replace(
            current,
            name=patch.name if patch.name is not None else current.name,
            description=patch.description if patch.description is not None else current.description,
            balance=patch.balance if patch.balance is not None else current.balance,
            active=patch.active if patch.active is not None else current.active,
        )
        validate_account_draft(updated.name, updated.description, updated.balance)

        try:
            saved = self._store.save(updated)
        except ConflictError as exc:
            logger.warning("update of account %s lost a version race: %s", account_id, exc)
            raise ConcurrencyConflict(account_id) from exc
        logger.info("account updated id=%s version=%s", saved.id, saved.version)
        return saved

    def soft_delete(self, account_id: int) -> Account:
        """Deactivate the account; repeating the call is a no-op."""
        current = self.find_by_id(account_id)
        if not current.active:
            return current
        try:
            saved = self._store.save(replace(current, active=False))
        except ConflictError as exc:
            logger.warning("deactivation of account %s lost a version race: %s", account_id, exc)
            raise ConcurrencyConflict(account_id) from exc
        logger.info("account deactivated id=%s", account_id)
        return saved
