"""Initial schema: memory_states, review_log, catalog_cards.

Revision ID: 001
Revises:
Create Date: 2026-10-17

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "memory_states",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("card_id", sa.String(128), nullable=False),
        sa.Column("introduced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("repetitions", sa.Integer, nullable=True),
        sa.Column("ease_factor", sa.Float, nullable=True),
        sa.Column("interval_days", sa.Integer, nullable=True),
        sa.Column("last_reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("correct_count", sa.Integer, nullable=True),
        sa.Column("incorrect_count", sa.Integer, nullable=True),
        sa.Column("total_reviews", sa.Integer, nullable=True),
        sa.Column("average_response_ms", sa.Float, nullable=True),
        sa.Column("response_samples", sa.Integer, nullable=True),
        sa.Column("correct_streak", sa.Integer, nullable=True),
        sa.Column("difficulty_adjustment", sa.Float, nullable=True),
        sa.Column("version", sa.Integer, nullable=False),
        sa.UniqueConstraint("user_id", "card_id", name="uq_memory_states_user_card"),
    )
    op.create_index("ix_memory_states_user_id", "memory_states", ["user_id"])
    op.create_index("ix_memory_states_due_at", "memory_states", ["due_at"])

    op.create_table(
        "review_log",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(64), nullable=False),
        sa.Column("card_id", sa.String(128), nullable=False),
        sa.Column("quality", sa.Integer, nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("interval_days", sa.Integer, nullable=False),
        sa.Column("ease_factor", sa.Float, nullable=False),
        sa.Column("response_ms", sa.Integer, nullable=True),
    )
    op.create_index("ix_review_log_user_id", "review_log", ["user_id"])
    op.create_index("ix_review_log_reviewed_at", "review_log", ["reviewed_at"])

    op.create_table(
        "catalog_cards",
        sa.Column("card_id", sa.String(128), primary_key=True),
        sa.Column("topic", sa.String(128), nullable=True),
        sa.Column("level", sa.String(8), nullable=True),
        sa.Column("position", sa.Integer, nullable=True),
    )


def downgrade() -> None:
    op.drop_table("catalog_cards")
    op.drop_index("ix_review_log_reviewed_at", table_name="review_log")
    op.drop_index("ix_review_log_user_id", table_name="review_log")
    op.drop_table("review_log")
    op.drop_index("ix_memory_states_due_at", table_name="memory_states")
    op.drop_index("ix_memory_states_user_id", table_name="memory_states")
    op.drop_table("memory_states")
