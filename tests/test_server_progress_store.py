"""Tests for server/db/progress_store.py -- SQLAlchemy progress store."""

import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from server.config import Settings
from server.db.progress_store import SqlProgressStore, load_catalog, save_catalog
from server.db.session import get_session_factory, init_db, reset_engine
from study.catalog import CatalogCard
from study.engine import grade_card
from study.errors import ConcurrentModificationError
from study.models import ReviewEvent, new_memory_state


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def _open(tmp: str):
    """Fresh engine bound to a temp SQLite file."""
    reset_engine()
    settings = Settings(
        data_root=Path(tmp),
        progress_backend='sql',
        database_url=f"sqlite:///{Path(tmp) / 'progress.db'}",
    )
    init_db(settings)
    return get_session_factory(settings)


def test_put_get_roundtrip():
    """Timestamps come back timezone-aware and in UTC."""
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            jst = timezone(timedelta(hours=9))
            state = new_memory_state('u1', 'c1', NOW.astimezone(jst))
            stored = store.put(state, expected_version=0)
            assert stored.version == 1

            got = store.get('u1', 'c1')
            assert got.introduced_at == NOW
            assert got.introduced_at.tzinfo is not None
            assert got.version == 1
            assert store.get('u1', 'nope') is None
        finally:
            reset_engine()


def test_conditional_update():
    """Stale writers lose; the stored row is untouched."""
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            v1 = store.put(new_memory_state('u1', 'c1', NOW), expected_version=0)
            v2 = store.put(replace(v1, ease_factor=2.6), expected_version=1)
            assert v2.version == 2

            with pytest.raises(ConcurrentModificationError) as exc:
                store.put(replace(v1, ease_factor=1.3), expected_version=1)
            assert exc.value.actual_version == 2
            assert store.get('u1', 'c1').ease_factor == 2.6
        finally:
            reset_engine()


def test_duplicate_insert_is_conflict():
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            store.put(new_memory_state('u1', 'c1', NOW), expected_version=0)
            with pytest.raises(ConcurrentModificationError):
                store.put(new_memory_state('u1', 'c1', NOW), expected_version=0)
        finally:
            reset_engine()


def test_query_and_review_log():
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            for i in range(3):
                grade_card(store, 'u1', f'c{i}', 4, now=NOW + timedelta(minutes=i))
            grade_card(store, 'u2', 'c0', 0, now=NOW)

            assert sorted(s.card_id for s in store.query_by_user('u1')) == ['c0', 'c1', 'c2']
            recent = store.recent_reviews('u1', limit=2)
            assert [e.card_id for e in recent] == ['c1', 'c2']
            assert all(isinstance(e, ReviewEvent) for e in recent)
            assert recent[0].reviewed_at == NOW + timedelta(minutes=1)
            assert store.recent_reviews('u2')[0].quality == 0
            assert store.recent_reviews('u1', limit=0) == []
        finally:
            reset_engine()


def test_catalog_roundtrip():
    with tempfile.TemporaryDirectory() as tmp:
        try:
            factory = _open(tmp)
            written = save_catalog(factory, [
                CatalogCard('k1', topic='kanji', level='N4', position=0),
                CatalogCard('h1', topic='hiragana', level='N5', position=0),
            ])
            assert written == 2
            # upsert by card_id
            save_catalog(factory, [CatalogCard('k1', topic='kanji', level='N3', position=1)])

            catalog = load_catalog(factory)
            assert catalog.ordered_ids() == ['h1', 'k1']
            assert catalog.get('k1').level == 'N3'
        finally:
            reset_engine()


def test_grade_and_log_commit_together():
    """A lost version check writes neither the state nor the review row."""
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            state = grade_card(store, 'u1', 'c1', 4, now=NOW)
            assert state.correct_streak == 1
            assert len(store.recent_reviews('u1')) == 1

            event = ReviewEvent(
                user_id='u1', card_id='c1', quality=5,
                reviewed_at=NOW + timedelta(days=1), interval_days=6, ease_factor=2.6,
            )
            with pytest.raises(ConcurrentModificationError):
                store.record_grade(replace(state, ease_factor=2.6), 0, event)
            with pytest.raises(ConcurrentModificationError):
                store.record_grade(replace(state, ease_factor=2.6), 5, event)
            assert len(store.recent_reviews('u1')) == 1
            assert store.get('u1', 'c1').version == 1
        finally:
            reset_engine()


def test_performance_fields_persist():
    with tempfile.TemporaryDirectory() as tmp:
        try:
            store = SqlProgressStore(_open(tmp))
            grade_card(store, 'u1', 'c1', 5, now=NOW, response_ms=900)
            state = store.get('u1', 'c1')
            assert state.response_samples == 1
            assert state.average_response_ms == 900
            assert state.correct_streak == 1
            assert state.difficulty_adjustment == pytest.approx(-0.1)
        finally:
            reset_engine()
