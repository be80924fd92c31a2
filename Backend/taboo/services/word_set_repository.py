"""WordSet Repository - ordered storage tiers plus an explicit fallback policy.

Each operation walks the tiers in order (remote store, local cache, built-in
defaults), awaiting every attempt fully before deciding what to do next. The
policy, not the call sites, decides whether a failure moves on to the next
tier, fails the operation, or degrades to an optimistic local echo.

Storage errors never leave this module: callers get a result object whose
status is one of the values below and, when data is degraded, a notice.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import BaseModel

from taboo.config import Settings
from taboo.database import Database
from taboo.schemas.word_set import WordSetRecord
from taboo.services.device_identity import DeviceIdentityResolver
from taboo.storage.base import (
    CAN_DELETE,
    DELETE,
    DELETED,
    FORBIDDEN,
    LOAD_ALL,
    NOT_FOUND,
    SAVE,
    OwnershipViolation,
    StorageTier,
    TierUnavailable,
    newest_first,
)
from taboo.storage.defaults import DefaultsTier
from taboo.storage.local_cache import LocalCacheTier
from taboo.storage.remote import RemoteTier

logger = logging.getLogger(__name__)

# Policy actions
NEXT_TIER = "next_tier"
FAIL = "fail"
DEGRADE = "degrade"

# Result statuses (DELETED, FORBIDDEN and NOT_FOUND come from the tiers)
SAVED = "saved"
SAVED_OFFLINE = "saved_offline"
FAILED = "failed"

CACHED_NOTICE = "The server is unreachable; showing word sets saved on this device."
DEFAULTS_NOTICE = "No saved word sets are reachable; showing the built-in sets."
OFFLINE_SAVE_NOTICE = "Saved offline; the set will be shared once the server is reachable."
FAILED_SAVE_NOTICE = "The server is unreachable; the set was not saved."
FAILED_DELETE_NOTICE = "The server is unreachable; the set was not deleted."


class FallbackPolicy:
    """Decides what a tier failure means for each operation.

    Reads always move on to the next tier. Writes move on to the local cache
    only when offline writes are enabled, otherwise they degrade to an
    unsaved echo. Permission checks and deletes fail closed unless offline
    deletes are enabled, so a production server never discards a set the
    remote store still holds.
    """

    def __init__(self, offline_writes: bool = True, offline_deletes: bool = False):
        self.offline_writes = offline_writes
        self.offline_deletes = offline_deletes

    @classmethod
    def from_settings(cls, settings: Settings) -> "FallbackPolicy":
        return cls(
            offline_writes=settings.OFFLINE_WRITES,
            offline_deletes=settings.offline_deletes_enabled,
        )

    def __call__(self, operation: str, tier_index: int, error: Exception) -> str:
        if operation == LOAD_ALL:
            return NEXT_TIER
        if operation == SAVE:
            return NEXT_TIER if self.offline_writes and tier_index == 0 else DEGRADE
        return NEXT_TIER if self.offline_deletes and tier_index == 0 else FAIL


class LoadResult(BaseModel):
    word_sets: list[WordSetRecord]
    source: str
    notice: str | None = None


class SaveResult(BaseModel):
    status: str
    word_set: WordSetRecord
    source: str | None = None
    notice: str | None = None


class DeleteResult(BaseModel):
    status: str
    source: str | None = None
    notice: str | None = None


class _Attempt(BaseModel):
    tier_index: int | None = None
    value: Any = None
    action: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.tier_index is not None


class WordSetRepository:
    def __init__(
        self,
        tiers: list[StorageTier],
        policy: Callable[[str, int, Exception], str] | None = None,
        resolver: DeviceIdentityResolver | None = None,
    ):
        if not tiers:
            raise ValueError("WordSetRepository needs at least one storage tier")
        self.tiers = list(tiers)
        self.policy = policy or FallbackPolicy()
        self.resolver = resolver

    async def _device(self, device_id: str | None) -> str:
        if device_id is not None:
            return device_id
        if self.resolver is None:
            return ""
        return await self.resolver.resolve()

    async def _attempt(
        self, operation: str, call: Callable[[StorageTier], Awaitable[Any]]
    ) -> _Attempt:
        """Try `call` on each tier supporting `operation`, in order."""
        action = FAIL
        for index, tier in enumerate(self.tiers):
            if not tier.supports(operation):
                continue
            try:
                return _Attempt(tier_index=index, value=await call(tier))
            except TierUnavailable as exc:
                action = self.policy(operation, index, exc)
                logger.warning(
                    "%s failed on %s tier (%s); policy says %s",
                    operation,
                    tier.name,
                    exc,
                    action,
                )
                if action != NEXT_TIER:
                    return _Attempt(action=action)
        return _Attempt(action=action if action != NEXT_TIER else FAIL)

    async def load_all(self) -> LoadResult:
        """Return word sets from the first tier that answers. Never raises."""
        attempt = await self._attempt(LOAD_ALL, lambda tier: tier.load_all())
        if not attempt.succeeded:
            return LoadResult(word_sets=[], source="none", notice=DEFAULTS_NOTICE)

        word_sets = {ws.id: ws for ws in attempt.value}
        if attempt.tier_index == 0:
            for synced in await self._replay_pending():
                word_sets[synced.id] = synced

        fresh = list(word_sets.values())
        for tier in self.tiers[attempt.tier_index + 1 :]:
            try:
                for kept in await tier.refresh(fresh):
                    word_sets[kept.id] = kept
            except TierUnavailable as exc:
                logger.warning("Could not refresh %s tier: %s", tier.name, exc)

        source = self.tiers[attempt.tier_index]
        notice = None
        if attempt.tier_index > 0:
            notice = DEFAULTS_NOTICE if isinstance(source, DefaultsTier) else CACHED_NOTICE
        return LoadResult(
            word_sets=newest_first(list(word_sets.values())),
            source=source.name,
            notice=notice,
        )

    async def _replay_pending(self) -> list[WordSetRecord]:
        """Push offline writes held by later tiers into the first tier.

        Replayed and refused records are dropped from the tier that held
        them; records that still cannot be written stay pending.
        """
        primary = self.tiers[0]
        if not primary.supports(SAVE):
            return []

        synced: list[WordSetRecord] = []
        for tier in self.tiers[1:]:
            try:
                pending = await tier.pending()
            except TierUnavailable as exc:
                logger.warning("Could not read pending writes from %s tier: %s", tier.name, exc)
                continue

            for record in pending:
                device_id = record.creator_device_id or ""
                try:
                    stored = await primary.save(
                        record.model_copy(update={"pending_sync": False}), device_id
                    )
                except TierUnavailable as exc:
                    logger.warning("Offline write %s not replayed yet: %s", record.id, exc)
                    continue
                except OwnershipViolation as exc:
                    logger.warning("Dropping offline write %s: %s", record.id, exc)
                else:
                    logger.info("Replayed offline write %s to %s tier", record.id, primary.name)
                    synced.append(stored)

                try:
                    await tier.forget(record.id)
                except TierUnavailable as exc:
                    logger.warning("Could not clear pending write %s: %s", record.id, exc)
        return synced

    async def _forget_later(self, tier_index: int, set_id: str) -> None:
        for later in self.tiers[tier_index + 1 :]:
            try:
                await later.forget(set_id)
            except TierUnavailable as exc:
                logger.warning("Could not drop %s from %s tier: %s", set_id, later.name, exc)

    async def save(self, word_set: WordSetRecord, device_id: str | None = None) -> SaveResult:
        device_id = await self._device(device_id)
        try:
            attempt = await self._attempt(SAVE, lambda tier: tier.save(word_set, device_id))
        except OwnershipViolation as exc:
            logger.info("Save refused: %s", exc)
            return SaveResult(
                status=FORBIDDEN,
                word_set=word_set,
                notice="This word set belongs to another device.",
            )

        if not attempt.succeeded:
            # Optimistic echo so the client can keep going; nothing was stored
            return SaveResult(
                status=FAILED,
                word_set=word_set.stamped(device_id),
                notice=FAILED_SAVE_NOTICE,
            )

        tier = self.tiers[attempt.tier_index]
        if attempt.tier_index == 0:
            # A newer online write supersedes any offline copy still pending
            await self._forget_later(0, attempt.value.id)
            return SaveResult(status=SAVED, word_set=attempt.value, source=tier.name)
        return SaveResult(
            status=SAVED_OFFLINE,
            word_set=attempt.value,
            source=tier.name,
            notice=OFFLINE_SAVE_NOTICE,
        )

    async def can_delete(self, set_id: str, device_id: str | None = None) -> bool:
        """Whether `device_id` may delete the set. False when no tier can tell."""
        device_id = await self._device(device_id)
        attempt = await self._attempt(
            CAN_DELETE, lambda tier: tier.can_delete(set_id, device_id)
        )
        return bool(attempt.value) if attempt.succeeded else False

    async def delete(self, set_id: str, device_id: str | None = None) -> DeleteResult:
        device_id = await self._device(device_id)
        attempt = await self._attempt(DELETE, lambda tier: tier.delete(set_id, device_id))
        if not attempt.succeeded:
            return DeleteResult(status=FAILED, notice=FAILED_DELETE_NOTICE)

        status = attempt.value
        tier = self.tiers[attempt.tier_index]
        if status == DELETED:
            await self._forget_later(attempt.tier_index, set_id)
        elif status == FORBIDDEN:
            return DeleteResult(
                status=FORBIDDEN,
                source=tier.name,
                notice="Only the device that created this word set can delete it.",
            )
        elif status == NOT_FOUND:
            return DeleteResult(status=NOT_FOUND, source=tier.name, notice="Word set not found.")
        return DeleteResult(status=status, source=tier.name)


def create_repository(database: Database, redis_client, settings: Settings) -> WordSetRepository:
    """Factory: remote store, then local cache, then built-in defaults."""
    tiers = [
        RemoteTier(database),
        LocalCacheTier(redis_client, settings.LOCAL_CACHE_KEY),
        DefaultsTier(),
    ]
    resolver = DeviceIdentityResolver(
        redis_client,
        key=settings.DEVICE_ID_KEY,
        timeout=settings.DEVICE_FINGERPRINT_TIMEOUT,
    )
    return WordSetRepository(tiers, FallbackPolicy.from_settings(settings), resolver)
