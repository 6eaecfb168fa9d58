from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from typing import Sequence

import pytest

from app.domain.account import Account
from app.domain.contracts import AccountDraft
from app.domain.service import BenefitService
from app.domain.transfer import TransferOrchestrator
from app.storage.memory import InMemoryAccountStore


class RacingStore:
    """Wraps a store and lets a test slip a competing write in before a commit.

    ``interleave`` is called with the inner store right before the first
    ``races`` calls to ``save``/``save_many`` go through, which reproduces
    another worker committing between our read and our write.
    """

    def __init__(self, inner: InMemoryAccountStore, interleave, races: int = 1) -> None:
        self.inner = inner
        self._interleave = interleave
        self._races = races
        self.gets = 0
        self.commits = 0

    def get(self, account_id: int) -> Account | None:
        self.gets += 1
        return self.inner.get(account_id)

    def list(self) -> list[Account]:
        return self.inner.list()

    def list_active(self) -> list[Account]:
        return self.inner.list_active()

    def create(self, draft: AccountDraft) -> Account:
        return self.inner.create(draft)

    def save(self, account: Account) -> Account:
        return self.save_many([account])[0]

    def save_many(self, accounts: Sequence[Account]) -> list[Account]:
        self.commits += 1
        if self._races > 0:
            self._races -= 1
            self._interleave(self.inner)
        return self.inner.save_many(accounts)


def bump_balance(account_id: int, delta: str):
    """Return an interleave callback that commits ``delta`` on ``account_id``."""

    def _write(inner: InMemoryAccountStore) -> None:
        current = inner.get(account_id)
        inner.save(replace(current, balance=current.balance + Decimal(delta)))

    return _write


@pytest.fixture
def store() -> InMemoryAccountStore:
    return InMemoryAccountStore()


@pytest.fixture
def service(store: InMemoryAccountStore) -> BenefitService:
    return BenefitService(store)


@pytest.fixture
def orchestrator(store: InMemoryAccountStore) -> TransferOrchestrator:
    return TransferOrchestrator(store)


@pytest.fixture
def accounts(store: InMemoryAccountStore) -> tuple[Account, Account]:
    """Two active accounts: A with 1000.00 and B with 500.00."""
    a = store.create(AccountDraft(name="Benefit A", description="Description A", balance=Decimal("1000.00")))
    b = store.create(AccountDraft(name="Benefit B", description="Description B", balance=Decimal("500.00")))
    return a, b
