from datetime import datetime

from sqlalchemy import DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taboo.models.base import Base


class Device(Base):
    __tablename__ = "devices"

    device_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    last_seen: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    word_sets: Mapped[list["WordSet"]] = relationship(  # noqa: F821
        back_populates="creator", cascade="all, delete-orphan", passive_deletes=True
    )
