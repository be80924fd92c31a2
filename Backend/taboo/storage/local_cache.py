"""Local persistent cache tier backed by a Redis key.

The whole collection lives under one key and is always read and written
wholesale; filtering and merging happen in memory. Every read-modify-write
runs under WATCH/MULTI and is retried when another writer got there first.

Ownership policy: the cache enforces the same guard as the remote store.
Records written offline carry their creator like any other record, because
the cache is shared by every device talking to this service.
"""

import logging
from collections.abc import Callable
from typing import Any

from pydantic import TypeAdapter, ValidationError
from redis.exceptions import RedisError, WatchError

from taboo.config import settings
from taboo.schemas.word_set import WordSetRecord
from taboo.services import ownership
from taboo.storage.base import (
    DELETED,
    FORBIDDEN,
    NOT_FOUND,
    OwnershipViolation,
    StorageTier,
    TierUnavailable,
    newest_first,
)

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(list[WordSetRecord])

# Attempts before a contended update gives up
MAX_UPDATE_ATTEMPTS = 10

# A change returns (records to write or None to leave the key alone, result)
Change = Callable[[list[WordSetRecord] | None], tuple[list[WordSetRecord] | None, Any]]


def _decode(raw: str | None) -> list[WordSetRecord] | None:
    if raw is None:
        return None
    try:
        return _RECORDS.validate_json(raw)
    except ValidationError as exc:
        raise TierUnavailable(f"local cache holds unreadable data: {exc}") from exc


def _encode(records: list[WordSetRecord]) -> str:
    return _RECORDS.dump_json(records, by_alias=True).decode()


def _require(records: list[WordSetRecord] | None) -> list[WordSetRecord]:
    if records is None:
        raise TierUnavailable("local cache is empty")
    return records


class LocalCacheTier(StorageTier):
    name = "local_cache"

    def __init__(self, redis_client, key: str = settings.LOCAL_CACHE_KEY):
        self.redis = redis_client
        self.key = key

    async def _read(self) -> list[WordSetRecord] | None:
        """Return the cached collection, or None if nothing was ever cached."""
        try:
            raw = await self.redis.get(self.key)
        except (RedisError, OSError) as exc:
            raise TierUnavailable(f"local cache unreachable: {exc}") from exc
        return _decode(raw)

    async def _update(self, change: Change, discard_unreadable: bool = False) -> Any:
        """Apply `change` to the collection as one optimistic transaction."""
        for _ in range(MAX_UPDATE_ATTEMPTS):
            try:
                async with self.redis.pipeline(transaction=True) as pipe:
                    await pipe.watch(self.key)
                    raw = await pipe.get(self.key)
                    try:
                        current = _decode(raw)
                    except TierUnavailable:
                        if not discard_unreadable:
                            raise
                        logger.warning("Discarding unreadable local cache")
                        current = None

                    records, result = change(current)
                    if records is None:
                        return result
                    pipe.multi()
                    pipe.set(self.key, _encode(records))
                    await pipe.execute()
                    return result
            except WatchError:
                logger.debug("Local cache changed during update, retrying")
                continue
            except (RedisError, OSError) as exc:
                raise TierUnavailable(f"local cache unreachable: {exc}") from exc
        raise TierUnavailable("local cache is too contended to update")

    async def load_all(self) -> list[WordSetRecord]:
        return newest_first(_require(await self._read()))

    async def pending(self) -> list[WordSetRecord]:
        records = await self._read()
        return [r for r in records or [] if r.pending_sync]

    async def save(self, word_set: WordSetRecord, device_id: str) -> WordSetRecord:
        """Store the set as pending sync, replacing any cached copy."""

        def change(current):
            records = list(current or [])
            existing = next((r for r in records if word_set.id and r.id == word_set.id), None)

            stored = word_set.stamped(device_id)
            if existing is not None:
                if not ownership.is_allowed(ownership.MODIFY, existing, device_id):
                    raise OwnershipViolation(
                        f"device {device_id!r} may not modify word set {existing.id}"
                    )
                stored = stored.model_copy(
                    update={
                        "is_custom": existing.is_custom,
                        "created_at": existing.created_at,
                        "creator_device_id": existing.creator_device_id,
                    }
                )
            stored = stored.model_copy(update={"pending_sync": True})

            if existing is not None:
                records = [stored if r.id == stored.id else r for r in records]
            else:
                records.append(stored)
            return records, stored

        return await self._update(change)

    async def can_delete(self, set_id: str, device_id: str) -> bool:
        records = _require(await self._read())
        found = next((r for r in records if r.id == set_id), None)
        return ownership.is_allowed(ownership.DELETE, found, device_id)

    async def delete(self, set_id: str, device_id: str) -> str:
        def change(current):
            records = _require(current)
            found = next((r for r in records if r.id == set_id), None)
            decision = ownership.authorize(ownership.DELETE, found, device_id)
            if decision == ownership.NOT_FOUND:
                return None, NOT_FOUND
            if decision == ownership.DENY:
                return None, FORBIDDEN
            return [r for r in records if r.id != set_id], DELETED

        return await self._update(change)

    async def refresh(self, word_sets: list[WordSetRecord]) -> list[WordSetRecord]:
        """Replace the cache with a fresh remote read, keeping offline writes
        the remote store has not absorbed yet.

        A pending record wins over the remote copy with the same id. Returns
        the pending records that were kept.
        """

        def change(current):
            pending = [r for r in current or [] if r.pending_sync]
            pending_ids = {r.id for r in pending}
            fresh = [ws for ws in word_sets if ws.id not in pending_ids]
            return fresh + pending, pending

        return await self._update(change, discard_unreadable=True)

    async def forget(self, set_id: str) -> None:
        def change(current):
            if not current:
                return None, None
            remaining = [r for r in current if r.id != set_id]
            if len(remaining) == len(current):
                return None, None
            return remaining, None

        await self._update(change)
