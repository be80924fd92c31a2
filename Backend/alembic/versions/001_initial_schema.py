"""Initial schema - devices, word sets and cards

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Devices
    op.create_table(
        "devices",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("device_id", sa.String(255), nullable=False),
        sa.Column("last_seen", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_devices"),
        sa.UniqueConstraint("device_id", name="uq_devices_device_id"),
    )

    # Word sets
    op.create_table(
        "word_sets",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("uuid", sa.String(36), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("device_id", sa.String(255), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_word_sets"),
        sa.UniqueConstraint("uuid", name="uq_word_sets_uuid"),
        sa.ForeignKeyConstraint(
            ["device_id"], ["devices.device_id"], name="fk_word_sets_device_id_devices", ondelete="CASCADE"
        ),
        sa.CheckConstraint(
            "(is_custom AND device_id IS NOT NULL) OR (NOT is_custom AND device_id IS NULL)",
            name="ck_word_sets_custom_has_creator",
        ),
    )
    op.create_index("ix_word_sets_device_id", "word_sets", ["device_id"])
    op.create_index("ix_word_sets_created_at", "word_sets", ["created_at"])

    # Cards
    op.create_table(
        "cards",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("card_id", sa.String(64), nullable=False),
        sa.Column("set_uuid", sa.String(36), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("main_word", sa.String(255), nullable=False),
        sa.Column("taboo_words", sa.JSON(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_cards"),
        sa.ForeignKeyConstraint(
            ["set_uuid"], ["word_sets.uuid"], name="fk_cards_set_uuid_word_sets", ondelete="CASCADE"
        ),
    )
    op.create_index("ix_cards_set_uuid", "cards", ["set_uuid"])


def downgrade() -> None:
    op.drop_table("cards")
    op.drop_table("word_sets")
    op.drop_table("devices")
