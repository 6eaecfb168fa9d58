"""Redis-backed account store with a Lua multi-key compare-and-set."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Final, Sequence

from redis import Redis
from redis.exceptions import ResponseError, WatchError

from ..domain.account import Account
from ..domain.contracts import AccountDraft
from ..domain.errors import AccountNotFound, ConflictError
from ..domain.validation import validate_account_draft

logger = logging.getLogger(__name__)

_WRITTEN: Final[int] = 1
_STALE: Final[int] = 0
_MISSING: Final[int] = -1


def _text(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisAccountStore:
    """Accounts stored as hashes holding a JSON ``doc`` and an integer ``version``.

    A sorted set indexes ids in creation order and ``INCR`` on a sequence key
    hands out new ids.
    """

    _SAVE_SCRIPT: Final[str] = """
    for i, key in ipairs(KEYS) do
        local current = redis.call('HGET', key, 'version')
        if not current then
            return {-1, i, 0}
        end
        if tonumber(current) ~= tonumber(ARGV[2 * i - 1]) then
            return {0, i, tonumber(current)}
        end
    end
    for i, key in ipairs(KEYS) do
        local next_version = tonumber(ARGV[2 * i - 1]) + 1
        redis.call('HSET', key, 'doc', ARGV[2 * i], 'version', tostring(next_version))
    end
    return {1, 0, 0}
    """

    def __init__(self, client: Redis, *, key_prefix: str = "benefit") -> None:
        """Keep the client, derive key names, and register the save script."""
        self._client = client
        self._key_prefix = key_prefix
        self._index_key = f"{key_prefix}:accounts"
        self._sequence_key = f"{key_prefix}:accounts:seq"
        self._save_script = client.register_script(self._SAVE_SCRIPT)

    def _key(self, account_id: int) -> str:
        return f"{self._key_prefix}:account:{account_id}"

    def get(self, account_id: int) -> Account | None:
        raw = self._client.hgetall(self._key(account_id))
        if not raw:
            return None
        return self._map_record(account_id, raw)

    def list(self) -> list[Account]:
        ids = [int(_text(member)) for member in self._client.zrange(self._index_key, 0, -1)]
        if not ids:
            return []
        pipe = self._client.pipeline(transaction=False)
        for account_id in ids:
            pipe.hgetall(self._key(account_id))
        rows = pipe.execute()
        return [self._map_record(account_id, raw) for account_id, raw in zip(ids, rows) if raw]

    def list_active(self) -> list[Account]:
        return [account for account in self.list() if account.active]

    def create(self, draft: AccountDraft) -> Account:
        """Allocate an id and write the hash and index entry in one MULTI block."""
        validate_account_draft(draft.name, draft.description, draft.balance)
        now = datetime.now(timezone.utc)
        account = Account(
            id=int(self._client.incr(self._sequence_key)),
            name=draft.name,
            description=draft.description,
            balance=draft.balance,
            active=draft.active,
            version=0,
            created_at=now,
            updated_at=now,
        )
        pipe = self._client.pipeline(transaction=True)
        pipe.hset(self._key(account.id), mapping={"doc": self._encode(account), "version": 0})
        pipe.zadd(self._index_key, {str(account.id): account.id})
        pipe.execute()
        return account

    def save(self, account: Account) -> Account:
        return self.save_many([account])[0]

    def save_many(self, accounts: Sequence[Account]) -> list[Account]:
        """Check every version and write every hash atomically inside Redis."""
        now = datetime.now(timezone.utc)
        pending = [self._stamp(account, now) for account in accounts]
        keys = [self._key(account.id) for account in accounts]
        args: list[Any] = []
        for account in pending:
            args.extend([account.version, self._encode(account)])
        try:
            result = self._save_script(keys=keys, args=args)
        except ResponseError as exc:
            message = str(exc).lower()
            if "unknown command `evalsha`" in message or "unknown command `eval`" in message:
                return self._save_many_fallback(pending)
            raise

        status, index, current = (int(item) for item in result)
        if status == _MISSING:
            raise AccountNotFound(accounts[index - 1].id)
        if status == _STALE:
            stale = accounts[index - 1]
            raise ConflictError(stale.id, stale.version, current)
        return [self._bump(account) for account in pending]

    def _save_many_fallback(self, pending: list[Account]) -> list[Account]:
        """WATCH/MULTI variant used when the server has scripting disabled."""
        keys = [self._key(account.id) for account in pending]
        with self._client.pipeline() as pipe:
            while True:
                try:
                    pipe.watch(*keys)
                    for account, key in zip(pending, keys):
                        current = pipe.hget(key, "version")
                        if current is None:
                            raise AccountNotFound(account.id)
                        if int(current) != account.version:
                            raise ConflictError(account.id, account.version, int(current))
                    pipe.multi()
                    for account, key in zip(pending, keys):
                        pipe.hset(
                            key,
                            mapping={"doc": self._encode(account), "version": account.version + 1},
                        )
                    pipe.execute()
                    break
                except WatchError:
                    # a watched key changed; re-read so the version check decides
                    logger.debug("watched account keys changed, re-checking %s", keys)
                    continue
        return [self._bump(account) for account in pending]

    def _stamp(self, account: Account, now: datetime) -> Account:
        return Account(
            id=account.id,
            name=account.name,
            description=account.description,
            balance=account.balance,
            active=account.active,
            version=account.version,
            created_at=account.created_at,
            updated_at=now,
        )

    def _bump(self, account: Account) -> Account:
        account.version += 1
        return account

    def _encode(self, account: Account) -> str:
        return json.dumps(
            {
                "name": account.name,
                "description": account.description,
                "balance": str(account.balance),
                "active": account.active,
                "created_at": account.created_at.isoformat(),
                "updated_at": account.updated_at.isoformat(),
            }
        )

    def _map_record(self, account_id: int, raw: dict) -> Account:
        fields = {_text(key): _text(value) for key, value in raw.items()}
        doc = json.loads(fields["doc"])
        return Account(
            id=account_id,
            name=doc["name"],
            description=doc["description"],
            balance=Decimal(doc["balance"]),
            active=bool(doc["active"]),
            version=int(fields["version"]),
            created_at=datetime.fromisoformat(doc["created_at"]),
            updated_at=datetime.fromisoformat(doc["updated_at"]),
        )
