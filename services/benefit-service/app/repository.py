"""Account store contract and its Postgres-backed implementation."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol, Sequence

from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool

from .domain.account import Account
from .domain.contracts import AccountDraft
from .domain.errors import AccountNotFound, ConflictError
from .domain.validation import validate_account_draft

logger = logging.getLogger(__name__)


class AccountStore(Protocol):
    """Persistence contract for benefit accounts.

    ``save`` and ``save_many`` are compare-and-set writes keyed on
    ``Account.version``: a stale version raises :class:`ConflictError` and
    nothing is written. ``save_many`` applies every record or none of them.
    """

    def get(self, account_id: int) -> Account | None: ...

    def list(self) -> list[Account]: ...

    def list_active(self) -> list[Account]: ...

    def create(self, draft: AccountDraft) -> Account: ...

    def save(self, account: Account) -> Account: ...

    def save_many(self, accounts: Sequence[Account]) -> list[Account]: ...


_COLUMNS = "id, name, description, balance, active, version, created_at, updated_at"


class PostgresAccountStore:
    """Postgres-backed account persistence with version-checked updates."""

    def __init__(self, pool: ConnectionPool) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool

    def get(self, account_id: int) -> Account | None:
        """Fetch an account by identifier or return ``None``."""
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"SELECT {_COLUMNS} FROM benefit_accounts WHERE id = %s",
                    (account_id,),
                )
                row = cur.fetchone()
                if not row:
                    return None
        return self._map_record(row)

    def list(self) -> list[Account]:
        return self._select(f"SELECT {_COLUMNS} FROM benefit_accounts ORDER BY id")

    def list_active(self) -> list[Account]:
        return self._select(
            f"SELECT {_COLUMNS} FROM benefit_accounts WHERE active ORDER BY id"
        )

    def create(self, draft: AccountDraft) -> Account:
        """Insert a new account at version 0 and return the stored row."""
        validate_account_draft(draft.name, draft.description, draft.balance)
        now = datetime.now(timezone.utc)
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO benefit_accounts (name, description, balance, active, version, created_at, updated_at)
                    VALUES (%s, %s, %s, %s, 0, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (draft.name, draft.description, draft.balance, draft.active, now, now),
                )
                row = cur.fetchone()
                conn.commit()
        return self._map_record(row)

    def save(self, account: Account) -> Account:
        return self.save_many([account])[0]

    def save_many(self, accounts: Sequence[Account]) -> list[Account]:
        """Apply every update in one transaction, or none when any version is stale.

        Rows are updated in ascending id order so that two transactions touching
        the same pair always lock them in the same sequence.
        """
        now = datetime.now(timezone.utc)
        saved: dict[int, Account] = {}
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                for account in sorted(accounts, key=lambda item: item.id):
                    cur.execute(
                        f"""
                        UPDATE benefit_accounts
                        SET name = %s, description = %s, balance = %s, active = %s,
                            version = version + 1, updated_at = %s
                        WHERE id = %s AND version = %s
                        RETURNING {_COLUMNS}
                        """,
                        (
                            account.name,
                            account.description,
                            account.balance,
                            account.active,
                            now,
                            account.id,
                            account.version,
                        ),
                    )
                    row = cur.fetchone()
                    if row is None:
                        # raising inside the pool context rolls back earlier updates
                        self._raise_write_failure(cur, account)
                    saved[account.id] = self._map_record(row)
                conn.commit()
        return [saved[account.id] for account in accounts]

    def _raise_write_failure(self, cur, account: Account) -> None:
        cur.execute("SELECT version FROM benefit_accounts WHERE id = %s", (account.id,))
        current = cur.fetchone()
        if current is None:
            raise AccountNotFound(account.id)
        logger.debug(
            "stale write rejected for account %s: expected %s, stored %s",
            account.id,
            account.version,
            current[0],
        )
        raise ConflictError(account.id, account.version, current[0])

    def _select(self, query: str) -> list[Account]:
        with self._pool.connection() as conn:
            with conn.cursor(row_factory=tuple_row) as cur:
                cur.execute(query)
                rows = cur.fetchall()
        return [self._map_record(row) for row in rows]

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            id=row[0],
            name=row[1],
            description=row[2],
            balance=row[3],
            active=row[4],
            version=row[5],
            created_at=row[6],
            updated_at=row[7],
        )
