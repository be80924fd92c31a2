from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taboo.models.base import Base


class WordSet(Base):
    __tablename__ = "word_sets"
    __table_args__ = (
        # Custom sets always have a creator, built-in sets never do
        CheckConstraint(
            "(is_custom AND device_id IS NOT NULL) OR (NOT is_custom AND device_id IS NULL)",
            name="custom_has_creator",
        ),
    )

    uuid: Mapped[str] = mapped_column(String(36), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )
    device_id: Mapped[str | None] = mapped_column(
        ForeignKey("devices.device_id", ondelete="CASCADE"), index=True
    )

    # Relationships
    creator: Mapped["Device | None"] = relationship(back_populates="word_sets")  # noqa: F821
    cards: Mapped[list["Card"]] = relationship(  # noqa: F821
        back_populates="word_set",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Card.position",
    )

    @property
    def creator_device_id(self) -> str | None:
        return self.device_id
