"""In-memory account store with lock-guarded compare-and-set writes."""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Sequence

from ..domain.account import Account
from ..domain.contracts import AccountDraft
from ..domain.errors import AccountNotFound, ConflictError
from ..domain.validation import validate_account_draft


class InMemoryAccountStore:
    """Thread-safe account store for development and tests.

    The lock is held only for a single read or compare-and-set, never across a
    caller's read-modify-write cycle, so conflicts are still detected through
    the version token.
    """

    def __init__(self) -> None:
        """Initialise the record map and id sequence."""
        self._accounts: dict[int, Account] = {}
        self._ids = itertools.count(1)
        self._lock = Lock()

    def get(self, account_id: int) -> Account | None:
        with self._lock:
            account = self._accounts.get(account_id)
            return replace(account) if account else None

    def list(self) -> list[Account]:
        with self._lock:
            return [replace(self._accounts[key]) for key in sorted(self._accounts)]

    def list_active(self) -> list[Account]:
        return [account for account in self.list() if account.active]

    def create(self, draft: AccountDraft) -> Account:
        """Assign an id, version 0 and timestamps, then store the account."""
        validate_account_draft(draft.name, draft.description, draft.balance)
        now = datetime.now(timezone.utc)
        with self._lock:
            account = Account(
                id=next(self._ids),
                name=draft.name,
                description=draft.description,
                balance=draft.balance,
                active=draft.active,
                version=0,
                created_at=now,
                updated_at=now,
            )
            self._accounts[account.id] = account
            return replace(account)

    def save(self, account: Account) -> Account:
        return self.save_many([account])[0]

    def save_many(self, accounts: Sequence[Account]) -> list[Account]:
        """Write every account or none, depending on all version checks passing."""
        now = datetime.now(timezone.utc)
        with self._lock:
            for account in accounts:
                stored = self._accounts.get(account.id)
                if stored is None:
                    raise AccountNotFound(account.id)
                if stored.version != account.version:
                    raise ConflictError(account.id, account.version, stored.version)

            saved: list[Account] = []
            for account in accounts:
                stored = self._accounts[account.id]
                updated = replace(
                    account,
                    version=stored.version + 1,
                    created_at=stored.created_at,
                    updated_at=now,
                )
                self._accounts[account.id] = updated
                saved.append(replace(updated))
            return saved
