"""Contract shared by the three word-set storage tiers.

Every tier answers the same four operations. A tier that cannot reach its
backing store raises TierUnavailable and nothing else, so the repository can
decide whether to move on to the next tier.
"""

from abc import ABC, abstractmethod

from taboo.schemas.word_set import WordSetRecord

# Operations
LOAD_ALL = "load_all"
SAVE = "save"
CAN_DELETE = "can_delete"
DELETE = "delete"
ALL_OPERATIONS = frozenset({LOAD_ALL, SAVE, CAN_DELETE, DELETE})

# Delete outcomes
DELETED = "deleted"
FORBIDDEN = "forbidden"
NOT_FOUND = "not_found"


class StorageError(Exception):
    """Base class for storage tier errors."""


class TierUnavailable(StorageError):
    """The tier's backing store could not be reached or failed mid-operation."""


class OwnershipViolation(StorageError):
    """A device tried to modify a word set it does not own."""


class UnsupportedOperation(StorageError):
    """The tier does not implement the requested operation."""


class StorageTier(ABC):
    name = "tier"
    operations = ALL_OPERATIONS

    def supports(self, operation: str) -> bool:
        return operation in self.operations

    @abstractmethod
    async def load_all(self) -> list[WordSetRecord]:
        """Return every stored word set, newest first."""
        ...

    async def save(self, word_set: WordSetRecord, device_id: str) -> WordSetRecord:
        raise UnsupportedOperation(f"{self.name} tier is read-only")

    async def can_delete(self, set_id: str, device_id: str) -> bool:
        raise UnsupportedOperation(f"{self.name} tier is read-only")

    async def delete(self, set_id: str, device_id: str) -> str:
        """Return DELETED, FORBIDDEN or NOT_FOUND."""
        raise UnsupportedOperation(f"{self.name} tier is read-only")

    async def pending(self) -> list[WordSetRecord]:
        """Records written here while a preferred tier was down."""
        return []

    async def refresh(self, word_sets: list[WordSetRecord]) -> list[WordSetRecord]:
        """Absorb a fresh read from a preferred tier.

        Returns records this tier holds that should be shown in place of, or
        in addition to, the fresh read. Tiers that do not cache return nothing.
        """
        return []

    async def forget(self, set_id: str) -> None:
        """Drop a set that a preferred tier has deleted."""
        return None


def newest_first(word_sets: list[WordSetRecord]) -> list[WordSetRecord]:
    return sorted(
        word_sets,
        key=lambda ws: ws.created_at.timestamp() if ws.created_at else 0.0,
        reverse=True,
    )
