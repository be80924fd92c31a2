"""Remote relational store for word sets, devices and cards."""

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from pydantic import ValidationError
from sqlalchemy import delete, insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from taboo.database import Database
from taboo.models.card import Card
from taboo.models.device import Device
from taboo.models.word_set import WordSet
from taboo.schemas.word_set import CardRecord, WordSetRecord
from taboo.services import ownership
from taboo.storage.base import (
    DELETED,
    FORBIDDEN,
    NOT_FOUND,
    OwnershipViolation,
    StorageTier,
    TierUnavailable,
)

logger = logging.getLogger(__name__)

# Pool acquisition timeouts arrive as sqlalchemy.exc.TimeoutError
_REMOTE_ERRORS = (SQLAlchemyError, OSError, asyncio.TimeoutError, ValidationError)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _to_record(row: WordSet) -> WordSetRecord:
    return WordSetRecord(
        id=row.uuid,
        name=row.name,
        description=row.description,
        is_custom=row.is_custom,
        created_at=row.created_at,
        creator_device_id=row.device_id,
        cards=[
            CardRecord(
                id=card.card_id,
                main_word=card.main_word,
                taboo_words=list(card.taboo_words),
            )
            for card in row.cards
        ],
    )


class RemoteTier(StorageTier):
    """Word sets in the relational store, one pooled connection per operation."""

    name = "remote"

    def __init__(self, database: Database):
        self.database = database

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self.database.transaction() as session:
                yield session
        except _REMOTE_ERRORS as exc:
            raise TierUnavailable(f"remote store failed: {exc}") from exc

    def _upsert(self, entity):
        dialect = self.database.engine.dialect.name
        try:
            return _UPSERT_INSERTS[dialect](entity)
        except KeyError:
            raise TierUnavailable(f"no upsert support for dialect {dialect!r}") from None

    async def load_all(self) -> list[WordSetRecord]:
        async with self._transaction() as session:
            result = await session.execute(
                select(WordSet)
                .options(selectinload(WordSet.cards))
                .order_by(WordSet.created_at.desc())
            )
            return [_to_record(row) for row in result.scalars().all()]

    async def save(self, word_set: WordSetRecord, device_id: str) -> WordSetRecord:
        """Persist the set and replace its cards in a single transaction.

        Device upsert, set upsert and card replacement run in that order, so
        every foreign key target exists before it is referenced. Creation
        time and ownership of an existing set are never changed.
        """
        record = word_set.stamped(device_id)
        async with self._transaction() as session:
            await self._upsert_device(session, device_id)

            existing = await self._get_for_update(session, record.id)
            if existing is not None and not ownership.is_allowed(
                ownership.MODIFY, existing, device_id
            ):
                raise OwnershipViolation(
                    f"device {device_id!r} may not modify word set {record.id}"
                )

            await self._upsert_word_set(session, record)
            # A concurrent first save of the same id may have won the insert
            owner = await session.scalar(
                select(WordSet.device_id).where(WordSet.uuid == record.id)
            )
            if owner != record.creator_device_id:
                raise OwnershipViolation(
                    f"device {device_id!r} may not modify word set {record.id}"
                )
            await self._replace_cards(session, record)

            stored = await session.execute(
                select(WordSet)
                .options(selectinload(WordSet.cards))
                .where(WordSet.uuid == record.id)
                .execution_options(populate_existing=True)
            )
            return _to_record(stored.scalar_one())

    async def can_delete(self, set_id: str, device_id: str) -> bool:
        async with self._transaction() as session:
            result = await session.execute(select(WordSet).where(WordSet.uuid == set_id))
            return ownership.is_allowed(
                ownership.DELETE, result.scalar_one_or_none(), device_id
            )

    async def delete(self, set_id: str, device_id: str) -> str:
        # The ownership decision and the delete share one locked transaction
        async with self._transaction() as session:
            row = await self._get_for_update(session, set_id)
            decision = ownership.authorize(ownership.DELETE, row, device_id)
            if decision == ownership.NOT_FOUND:
                return NOT_FOUND
            if decision == ownership.DENY:
                logger.info("Device %r refused delete of word set %s", device_id, set_id)
                return FORBIDDEN

            await session.execute(delete(Card).where(Card.set_uuid == set_id))
            await session.execute(delete(WordSet).where(WordSet.uuid == set_id))
            return DELETED

    async def _get_for_update(self, session: AsyncSession, set_id: str) -> WordSet | None:
        result = await session.execute(
            select(WordSet).where(WordSet.uuid == set_id).with_for_update()
        )
        return result.scalar_one_or_none()

    async def _upsert_device(self, session: AsyncSession, device_id: str) -> None:
        now = datetime.now(timezone.utc)
        stmt = self._upsert(Device).values(id=uuid.uuid4(), device_id=device_id, last_seen=now)
        stmt = stmt.on_conflict_do_update(
            index_elements=[Device.device_id],
            set_={"last_seen": now},
        )
        await session.execute(stmt)

    async def _upsert_word_set(self, session: AsyncSession, record: WordSetRecord) -> None:
        stmt = self._upsert(WordSet).values(
            id=uuid.uuid4(),
            uuid=record.id,
            name=record.name,
            description=record.description,
            is_custom=record.is_custom,
            created_at=record.created_at,
            device_id=record.creator_device_id,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[WordSet.uuid],
            set_={
                "name": stmt.excluded.name,
                "description": stmt.excluded.description,
            },
            where=WordSet.device_id == stmt.excluded.device_id,
        )
        await session.execute(stmt)

    async def _replace_cards(self, session: AsyncSession, record: WordSetRecord) -> None:
        await session.execute(delete(Card).where(Card.set_uuid == record.id))
        await self._insert_cards(session, record)

    async def _insert_cards(self, session: AsyncSession, record: WordSetRecord) -> None:
        if not record.cards:
            return
        await session.execute(
            insert(Card),
            [
                {
                    "id": uuid.uuid4(),
                    "card_id": card.id,
                    "set_uuid": record.id,
                    "position": position,
                    "main_word": card.main_word,
                    "taboo_words": list(card.taboo_words),
                }
                for position, card in enumerate(record.cards)
            ],
        )
