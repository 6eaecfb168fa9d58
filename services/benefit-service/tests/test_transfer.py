"""Transfer orchestration: business rules, conservation and conflict retries."""

from __future__ import annotations

import random
import threading
from dataclasses import replace
from decimal import Decimal

import pytest

from app.domain.contracts import AccountDraft, TransferRequest
from app.domain.errors import (
    AccountNotFound,
    ConcurrencyConflict,
    InactiveAccount,
    InsufficientBalance,
    InvalidTransfer,
)
from app.domain.transfer import TransferOrchestrator
from app.storage.memory import InMemoryAccountStore

from conftest import RacingStore, bump_balance


def _request(from_id: int, to_id: int, amount: str) -> TransferRequest:
    return TransferRequest(from_id=from_id, to_id=to_id, amount=Decimal(amount))


def test_transfer_moves_amount_between_accounts(orchestrator, store, accounts):
    a, b = accounts
    receipt = orchestrator.transfer(_request(a.id, b.id, "200.00"))

    assert store.get(a.id).balance == Decimal("800.00")
    assert store.get(b.id).balance == Decimal("700.00")
    assert receipt.source.balance == Decimal("800.00")
    assert receipt.target.balance == Decimal("700.00")
    assert receipt.amount == Decimal("200.00")
    assert receipt.attempts == 1
    assert (receipt.source.version, receipt.target.version) == (1, 1)


def test_transfer_conserves_total(orchestrator, store, accounts):
    a, b = accounts
    before = a.balance + b.balance
    for amount in ["0.01", "333.33", "666.66"]:
        orchestrator.transfer(_request(a.id, b.id, amount))
    orchestrator.transfer(_request(b.id, a.id, "1.50"))

    assert store.get(a.id).balance + store.get(b.id).balance == before
    assert store.get(a.id).balance == Decimal("1.50")


def test_transfer_can_drain_source_to_zero(orchestrator, store, accounts):
    a, b = accounts
    orchestrator.transfer(_request(a.id, b.id, "1000.00"))
    assert store.get(a.id).balance == Decimal("0.00")


def test_insufficient_balance_leaves_both_accounts_untouched(orchestrator, store, accounts):
    a, b = accounts
    with pytest.raises(InsufficientBalance) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "2000.00"))

    error = excinfo.value
    assert (error.account_id, error.current, error.requested) == (a.id, Decimal("1000.00"), Decimal("2000.00"))
    assert store.get(a.id) == a
    assert store.get(b.id) == b


def test_self_transfer_fails_before_any_read(store, accounts):
    a, _ = accounts
    spy = RacingStore(store, lambda inner: None, races=0)
    orchestrator = TransferOrchestrator(spy)

    with pytest.raises(InvalidTransfer):
        orchestrator.transfer(_request(a.id, a.id, "100.00"))
    assert spy.gets == 0
    assert spy.commits == 0


@pytest.mark.parametrize("amount", ["0", "-5.00"])
def test_non_positive_amount_is_rejected(orchestrator, store, accounts, amount):
    a, b = accounts
    with pytest.raises(InvalidTransfer):
        orchestrator.transfer(_request(a.id, b.id, amount))
    assert store.get(a.id).version == 0


def test_missing_accounts_name_the_side(orchestrator, accounts):
    a, _ = accounts
    with pytest.raises(AccountNotFound) as source_error:
        orchestrator.transfer(_request(99, a.id, "1.00"))
    assert source_error.value.kind == "source account"
    assert source_error.value.account_id == 99

    with pytest.raises(AccountNotFound) as target_error:
        orchestrator.transfer(_request(a.id, 98, "1.00"))
    assert target_error.value.kind == "target account"
    assert target_error.value.account_id == 98


def test_inactive_source_or_target_is_refused_even_with_funds(orchestrator, service, accounts):
    a, b = accounts
    service.soft_delete(b.id)
    with pytest.raises(InactiveAccount) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "1.00"))
    assert excinfo.value.account_id == b.id

    with pytest.raises(InactiveAccount) as excinfo:
        orchestrator.transfer(_request(b.id, a.id, "1.00"))
    assert excinfo.value.account_id == b.id


def test_business_checks_run_in_order(orchestrator, service, accounts):
    a, b = accounts
    service.soft_delete(a.id)
    service.soft_delete(b.id)

    # both inactive and underfunded: the source check wins
    with pytest.raises(InactiveAccount) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "5000.00"))
    assert excinfo.value.account_id == a.id


def test_deleted_account_cannot_send(orchestrator, service, store, accounts):
    a, b = accounts
    service.soft_delete(a.id)

    with pytest.raises(InactiveAccount):
        orchestrator.transfer(_request(a.id, b.id, "1.00"))
    assert store.get(a.id).balance == Decimal("1000.00")


def test_conflict_is_retried_from_fresh_reads(store, accounts):
    a, b = accounts
    # another writer commits on A between our read (version 0) and our commit
    racing = RacingStore(store, bump_balance(a.id, "10.00"))
    orchestrator = TransferOrchestrator(racing)

    receipt = orchestrator.transfer(_request(a.id, b.id, "200.00"))

    assert receipt.attempts == 2
    assert racing.commits == 2
    assert racing.gets == 4
    assert store.get(a.id).balance == Decimal("810.00")
    assert store.get(a.id).version == 2
    assert store.get(b.id).balance == Decimal("700.00")


def test_two_transfers_reading_same_version(store, accounts):
    a, b = accounts
    # bring A to version 3
    for _ in range(3):
        current = store.get(a.id)
        store.save(current)
    assert store.get(a.id).version == 3

    first = TransferOrchestrator(store)

    def commit_first(inner: InMemoryAccountStore) -> None:
        first.transfer(_request(a.id, b.id, "100.00"))

    second = TransferOrchestrator(RacingStore(store, commit_first))
    receipt = second.transfer(_request(a.id, b.id, "50.00"))

    assert receipt.attempts == 2
    final_a = store.get(a.id)
    assert final_a.balance == Decimal("850.00")
    assert final_a.version == 5
    assert store.get(b.id).balance == Decimal("650.00")


def test_retry_rechecks_funds(store, accounts):
    a, b = accounts

    def drain(inner: InMemoryAccountStore) -> None:
        current = inner.get(a.id)
        inner.save(replace(current, balance=Decimal("50.00")))

    orchestrator = TransferOrchestrator(RacingStore(store, drain))

    with pytest.raises(InsufficientBalance) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "200.00"))
    assert excinfo.value.current == Decimal("50.00")
    assert store.get(b.id).balance == Decimal("500.00")


def test_exhausted_retries_surface_concurrency_conflict(store, accounts):
    a, b = accounts
    racing = RacingStore(store, bump_balance(b.id, "1.00"), races=10)
    orchestrator = TransferOrchestrator(racing, max_attempts=3)

    with pytest.raises(ConcurrencyConflict) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "100.00"))

    assert excinfo.value.account_id == b.id
    assert excinfo.value.attempts == 3
    assert racing.commits == 3
    assert store.get(a.id).balance == Decimal("1000.00")
    assert store.get(b.id).balance == Decimal("503.00")


def test_single_attempt_conflict_is_not_retried(store, accounts):
    a, b = accounts
    racing = RacingStore(store, bump_balance(a.id, "1.00"))
    orchestrator = TransferOrchestrator(racing, max_attempts=1)

    with pytest.raises(ConcurrencyConflict) as excinfo:
        orchestrator.transfer(_request(a.id, b.id, "100.00"))

    assert excinfo.value.attempts == 1
    assert racing.commits == 1
    assert store.get(b.id).balance == Decimal("500.00")


def test_credit_past_maximum_balance_is_rejected(orchestrator, store):
    source = store.create(AccountDraft(name="Small", balance=Decimal("1.00")))
    target = store.create(AccountDraft(name="Full", balance=Decimal("9999999999999.99")))

    with pytest.raises(InvalidTransfer, match="maximum balance"):
        orchestrator.transfer(_request(source.id, target.id, "1.00"))

    assert store.get(source.id).balance == Decimal("1.00")
    assert store.get(target.id).balance == Decimal("9999999999999.99")
    assert store.get(target.id).version == 0


def test_credit_up_to_maximum_balance_is_allowed(orchestrator, store):
    source = store.create(AccountDraft(name="Small", balance=Decimal("1.00")))
    target = store.create(AccountDraft(name="Almost full", balance=Decimal("9999999999998.99")))

    orchestrator.transfer(_request(source.id, target.id, "1.00"))

    assert store.get(target.id).balance == Decimal("9999999999999.99")


def test_max_attempts_must_be_positive(store):
    with pytest.raises(ValueError):
        TransferOrchestrator(store, max_attempts=0)


def test_concurrent_transfers_conserve_total_and_never_overdraw():
    store = InMemoryAccountStore()
    ids = [
        store.create(AccountDraft(name=f"pool-{index}", balance=Decimal("50.00"))).id
        for index in range(4)
    ]
    total_before = sum(store.get(account_id).balance for account_id in ids)
    orchestrator = TransferOrchestrator(store, max_attempts=1000)
    committed: list[int] = []
    lock = threading.Lock()

    def worker(seed: int) -> None:
        rng = random.Random(seed)
        for _ in range(40):
            from_id, to_id = rng.sample(ids, 2)
            amount = Decimal(rng.randint(1, 2500)) / 100
            try:
                orchestrator.transfer(_request(from_id, to_id, str(amount)))
            except InsufficientBalance:
                continue
            with lock:
                committed.append(1)

    threads = [threading.Thread(target=worker, args=(seed,)) for seed in range(6)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    final = [store.get(account_id) for account_id in ids]
    assert sum(account.balance for account in final) == total_before
    assert all(account.balance >= 0 for account in final)
    # every committed transfer bumped exactly two versions
    assert sum(account.version for account in final) == 2 * len(committed)
