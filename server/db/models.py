"""SQLAlchemy models for spaced repetition progress."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Float, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class MemoryStateRecord(Base):
    """One row per (user_id, card_id). due_at is stored for indexing only."""

    __tablename__ = "memory_states"
    __table_args__ = (
        UniqueConstraint("user_id", "card_id", name="uq_memory_states_user_card"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    card_id: Mapped[str] = mapped_column(String(128), nullable=False)
    introduced_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    repetitions: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    due_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    incorrect_count: Mapped[int] = mapped_column(Integer, default=0)
    total_reviews: Mapped[int] = mapped_column(Integer, default=0)
    average_response_ms: Mapped[float] = mapped_column(Float, default=0.0)
    response_samples: Mapped[int] = mapped_column(Integer, default=0)
    correct_streak: Mapped[int] = mapped_column(Integer, default=0)
    difficulty_adjustment: Mapped[float] = mapped_column(Float, default=0.0)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)


class ReviewLogRecord(Base):
    __tablename__ = "review_log"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)
    card_id: Mapped[str] = mapped_column(String(128), nullable=False)
    quality: Mapped[int] = mapped_column(Integer, nullable=False)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), index=True, nullable=False)
    interval_days: Mapped[int] = mapped_column(Integer, nullable=False)
    ease_factor: Mapped[float] = mapped_column(Float, nullable=False)
    response_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)


class CatalogCardRecord(Base):
    """Content ordering for new-card introduction."""

    __tablename__ = "catalog_cards"

    card_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    topic: Mapped[str] = mapped_column(String(128), default="")
    level: Mapped[str] = mapped_column(String(8), default="N5")
    position: Mapped[int] = mapped_column(Integer, default=0)
