import uuid
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

CAMEL_CASE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _new_card_id() -> str:
    return uuid.uuid4().hex[:9]


class CardRecord(BaseModel):
    model_config = CAMEL_CASE

    id: str = Field(default_factory=_new_card_id, min_length=1, max_length=64)
    main_word: str = Field(min_length=1, max_length=255)
    taboo_words: list[str] = Field(min_length=1)


class WordSetRecord(BaseModel):
    """A word set as every storage tier and the API exchange it."""

    model_config = CAMEL_CASE

    id: str | None = Field(default=None, max_length=36)
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    is_custom: bool = True
    created_at: datetime | None = None
    creator_device_id: str | None = None
    cards: list[CardRecord] = Field(default_factory=list)
    pending_sync: bool = False  # Written offline, not yet seen by the remote store

    @field_validator("created_at")
    @classmethod
    def _assume_utc(cls, value: datetime | None) -> datetime | None:
        # SQLite hands back naive datetimes
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def stamped(self, device_id: str) -> "WordSetRecord":
        """Copy with id and createdAt filled in where absent and ownership
        set from the writing device. Built-in sets never carry a creator."""
        return self.model_copy(
            update={
                "id": self.id or str(uuid.uuid4()),
                "created_at": self.created_at or datetime.now(timezone.utc),
                "creator_device_id": device_id if self.is_custom else None,
            }
        )


class PermissionResponse(BaseModel):
    model_config = CAMEL_CASE

    can_delete: bool


class DeleteResponse(BaseModel):
    success: bool


class ErrorResponse(BaseModel):
    error: str


class GenerateRequest(BaseModel):
    model_config = CAMEL_CASE

    topic: str = Field(default="", max_length=255)
    category: str = Field(default="", max_length=255)
    count: int = Field(default=30, ge=1, le=150)
    exclude_words: list[str] = Field(default_factory=list)


class GenerateResponse(BaseModel):
    model_config = CAMEL_CASE

    cards: list[CardRecord]
    used_llm: bool
