from sqlalchemy import JSON, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from taboo.models.base import Base


class Card(Base):
    __tablename__ = "cards"

    set_uuid: Mapped[str] = mapped_column(
        ForeignKey("word_sets.uuid", ondelete="CASCADE"), index=True
    )
    card_id: Mapped[str] = mapped_column(String(64), nullable=False)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    main_word: Mapped[str] = mapped_column(String(255), nullable=False)
    taboo_words: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    # Relationships
    word_set: Mapped["WordSet"] = relationship(back_populates="cards")  # noqa: F821
