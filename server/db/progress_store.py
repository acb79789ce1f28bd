"""SQL-backed ProgressStore and catalog persistence."""

from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session as DBSession, sessionmaker

from server.db.models import CatalogCardRecord, MemoryStateRecord, ReviewLogRecord
from server.db.session import session_scope
from study.catalog import CardCatalog, CatalogCard
from study.errors import ConcurrentModificationError
from study.models import MemoryState, ReviewEvent
from study.storage import ProgressStore


def _as_utc(ts: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; stored values are always UTC."""
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def _state_values(state: MemoryState) -> dict:
    return {
        "introduced_at": _as_utc(state.introduced_at),
        "repetitions": state.repetitions,
        "ease_factor": state.ease_factor,
        "interval_days": state.interval_days,
        "last_reviewed_at": _as_utc(state.last_reviewed_at),
        "due_at": _as_utc(state.due_at),
        "correct_count": state.correct_count,
        "incorrect_count": state.incorrect_count,
        "total_reviews": state.total_reviews,
        "average_response_ms": state.average_response_ms,
        "response_samples": state.response_samples,
        "correct_streak": state.correct_streak,
        "difficulty_adjustment": state.difficulty_adjustment,
    }


def _row_to_state(row: MemoryStateRecord) -> MemoryState:
    return MemoryState(
        user_id=row.user_id,
        card_id=row.card_id,
        introduced_at=_as_utc(row.introduced_at),
        repetitions=row.repetitions,
        ease_factor=row.ease_factor,
        interval_days=row.interval_days,
        last_reviewed_at=_as_utc(row.last_reviewed_at),
        correct_count=row.correct_count,
        incorrect_count=row.incorrect_count,
        total_reviews=row.total_reviews,
        average_response_ms=row.average_response_ms,
        response_samples=row.response_samples,
        correct_streak=row.correct_streak,
        difficulty_adjustment=row.difficulty_adjustment,
        version=row.version,
    )


def _review_record(event: ReviewEvent) -> ReviewLogRecord:
    return ReviewLogRecord(
        user_id=event.user_id,
        card_id=event.card_id,
        quality=event.quality,
        reviewed_at=_as_utc(event.reviewed_at),
        interval_days=event.interval_days,
        ease_factor=event.ease_factor,
        response_ms=event.response_ms,
    )


class SqlProgressStore(ProgressStore):
    """
    ProgressStore over SQLAlchemy.

    put() is a conditional UPDATE on the version column, or an INSERT
    guarded by the (user_id, card_id) unique constraint when
    expected_version is 0. Losing either race raises
    ConcurrentModificationError. Connection failures surface as
    StoreUnavailableError.
    """

    def __init__(self, session_factory: sessionmaker):
        self._factory = session_factory

    def _find(self, session: DBSession, user_id: str, card_id: str) -> Optional[MemoryStateRecord]:
        return session.execute(
            select(MemoryStateRecord).where(
                MemoryStateRecord.user_id == user_id,
                MemoryStateRecord.card_id == card_id,
            )
        ).scalar_one_or_none()

    def get(self, user_id: str, card_id: str) -> Optional[MemoryState]:
        with session_scope(self._factory) as session:
            row = self._find(session, user_id, card_id)
            return _row_to_state(row) if row is not None else None

    def _write_state(self, session: DBSession, state: MemoryState, expected_version: int) -> MemoryState:
        new_version = expected_version + 1
        if expected_version == 0:
            session.add(MemoryStateRecord(
                user_id=state.user_id,
                card_id=state.card_id,
                version=new_version,
                **_state_values(state),
            ))
            try:
                session.flush()
            except IntegrityError as e:
                raise ConcurrentModificationError(
                    state.user_id, state.card_id, expected_version,
                ) from e
        else:
            result = session.execute(
                update(MemoryStateRecord)
                .where(
                    MemoryStateRecord.user_id == state.user_id,
                    MemoryStateRecord.card_id == state.card_id,
                    MemoryStateRecord.version == expected_version,
                )
                .values(version=new_version, **_state_values(state))
            )
            if result.rowcount != 1:
                row = self._find(session, state.user_id, state.card_id)
                raise ConcurrentModificationError(
                    state.user_id, state.card_id, expected_version,
                    row.version if row is not None else 0,
                )
        return state.with_version(new_version)

    def put(self, state: MemoryState, expected_version: int) -> MemoryState:
        with session_scope(self._factory) as session:
            return self._write_state(session, state, expected_version)

    def query_by_user(self, user_id: str) -> List[MemoryState]:
        with session_scope(self._factory) as session:
            rows = session.execute(
                select(MemoryStateRecord).where(MemoryStateRecord.user_id == user_id)
            ).scalars().all()
            return [_row_to_state(r) for r in rows]

    def append_review(self, event: ReviewEvent) -> None:
        with session_scope(self._factory) as session:
            session.add(_review_record(event))

    def record_grade(self, state: MemoryState, expected_version: int, event: ReviewEvent) -> MemoryState:
        """State update and review-log row commit in one transaction."""
        with session_scope(self._factory) as session:
            stored = self._write_state(session, state, expected_version)
            session.add(_review_record(event))
        return stored

    def recent_reviews(self, user_id: str, limit: int = 200) -> List[ReviewEvent]:
        if limit <= 0:
            return []
        with session_scope(self._factory) as session:
            rows = session.execute(
                select(ReviewLogRecord)
                .where(ReviewLogRecord.user_id == user_id)
                .order_by(ReviewLogRecord.reviewed_at.desc())
                .limit(limit)
            ).scalars().all()
            events = [
                ReviewEvent(
                    user_id=r.user_id,
                    card_id=r.card_id,
                    quality=r.quality,
                    reviewed_at=_as_utc(r.reviewed_at),
                    interval_days=r.interval_days,
                    ease_factor=r.ease_factor,
                    response_ms=r.response_ms,
                )
                for r in rows
            ]
        events.reverse()
        return events


def load_catalog(session_factory: sessionmaker) -> CardCatalog:
    """Read the whole catalog table."""
    with session_scope(session_factory) as session:
        rows = session.execute(select(CatalogCardRecord)).scalars().all()
        return CardCatalog(
            CatalogCard(card_id=r.card_id, topic=r.topic, level=r.level, position=r.position)
            for r in rows
        )


def save_catalog(session_factory: sessionmaker, cards: Iterable[CatalogCard]) -> int:
    """Upsert catalog cards by card_id. Returns how many were written."""
    count = 0
    with session_scope(session_factory) as session:
        for card in cards:
            session.merge(CatalogCardRecord(
                card_id=card.card_id, topic=card.topic, level=card.level, position=card.position,
            ))
            count += 1
    return count
