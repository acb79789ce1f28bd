"""Tests for study/engine.py -- grade, queue and stats entry points."""

import sys
import tempfile
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from study.catalog import CardCatalog, CatalogCard
from study.engine import (
    get_card_state,
    get_insights,
    get_session_size,
    get_stats,
    get_study_queue,
    grade_card,
    reset_card,
)
from study.errors import (
    ConcurrentModificationError,
    InvalidQualityError,
    RecordNotFoundError,
    StoreUnavailableError,
)
from study.models import new_memory_state
from study.quality import ReviewQuality
from study.storage import JsonlProgressStore


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class RacingStore(JsonlProgressStore):
    """Simulates another writer landing between our read and write."""

    def __init__(self, db_path, races=1):
        super().__init__(db_path)
        self.races = races
        self.put_calls = 0

    def put(self, state, expected_version):
        self.put_calls += 1
        if self.races > 0:
            self.races -= 1
            current = self.get(state.user_id, state.card_id)
            if current is None:
                super().put(new_memory_state(state.user_id, state.card_id, state.introduced_at), expected_version=0)
            else:
                super().put(replace(current, ease_factor=2.0), expected_version=current.version)
        return super().put(state, expected_version)


class DownStore(JsonlProgressStore):
    def query_by_user(self, user_id):
        raise StoreUnavailableError("database is down")

    def get(self, user_id, card_id):
        raise StoreUnavailableError("database is down")


class LogDownStore(JsonlProgressStore):
    """State writes succeed; the review log is unreachable."""

    def append_review(self, event):
        raise StoreUnavailableError("review log is down")


def _catalog() -> CardCatalog:
    return CardCatalog(CatalogCard(f'n{i}', topic='kana', position=i) for i in range(10))


def test_first_grade_creates_record():
    """Grading an unseen card creates it, then applies the grade."""
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        state = grade_card(store, 'u1', 'c1', ReviewQuality.CORRECT, now=NOW)
        assert state.version == 1
        assert state.repetitions == 1
        assert state.interval_days == 1
        assert state.due_at == NOW + timedelta(days=1)
        assert store.get('u1', 'c1') == state
        assert [e.quality for e in store.recent_reviews('u1')] == [4]


def test_sequence_of_grades():
    """4, 4, 5 on day 0, 1 and 7: intervals 1, 6, 16."""
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        s1 = grade_card(store, 'u1', 'c1', 4, now=NOW)
        s2 = grade_card(store, 'u1', 'c1', 4, now=s1.due_at)
        s3 = grade_card(store, 'u1', 'c1', 5, now=s2.due_at)
        assert [s1.interval_days, s2.interval_days, s3.interval_days] == [1, 6, 16]
        assert s3.ease_factor == pytest.approx(2.6)
        assert s3.version == 3
        assert s3.total_reviews == 3


def test_invalid_quality_writes_nothing():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        with pytest.raises(InvalidQualityError):
            grade_card(store, 'u1', 'c1', 7, now=NOW)
        assert store.get('u1', 'c1') is None
        assert store.recent_reviews('u1') == []


def test_conflict_retried_against_fresh_state():
    """A lost race is retried and the grade lands on the rival's write."""
    with tempfile.TemporaryDirectory() as tmp:
        store = RacingStore(Path(tmp) / 'progress.jsonl', races=0)
        grade_card(store, 'u1', 'c1', 4, now=NOW)
        store.races = 1

        state = grade_card(store, 'u1', 'c1', 4, now=NOW + timedelta(days=1))
        # rival set ease 2.0 and bumped the version; our retry built on it
        assert state.version == 3
        assert state.ease_factor == 2.0
        assert state.total_reviews == 2
        assert len(store.recent_reviews('u1')) == 2


def test_conflict_on_create_retried():
    with tempfile.TemporaryDirectory() as tmp:
        store = RacingStore(Path(tmp) / 'progress.jsonl', races=1)
        state = grade_card(store, 'u1', 'c1', 5, now=NOW)
        assert state.version == 2
        assert state.total_reviews == 1


def test_conflict_exhausts_retries():
    """Every attempt loses: ConcurrentModificationError after max_attempts."""
    with tempfile.TemporaryDirectory() as tmp:
        store = RacingStore(Path(tmp) / 'progress.jsonl', races=10)
        with pytest.raises(ConcurrentModificationError):
            grade_card(store, 'u1', 'c1', 4, now=NOW, max_attempts=3)
        assert store.put_calls == 3
        assert store.recent_reviews('u1') == []


def test_get_card_state_missing():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        with pytest.raises(RecordNotFoundError):
            get_card_state(store, 'u1', 'nope')


def test_reset_card():
    """Reset puts the card back to creation defaults and makes it due now."""
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        for q in (5, 5, 5):
            grade_card(store, 'u1', 'c1', q, now=NOW)
        later = NOW + timedelta(days=2)
        state = reset_card(store, 'u1', 'c1', now=later)
        assert state.repetitions == 0
        assert state.ease_factor == 2.5
        assert state.due_at == later
        assert state.total_reviews == 3
        assert state.version == 4

        with pytest.raises(RecordNotFoundError):
            reset_card(store, 'u1', 'other', now=later)


def test_get_stats_and_queue():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        grade_card(store, 'u1', 'n0', 4, now=NOW - timedelta(days=3))
        grade_card(store, 'u1', 'n1', 1, now=NOW - timedelta(days=3))

        stats = get_stats(store, 'u1', now=NOW)
        assert stats['learning'] == 2
        assert stats['total'] == 2
        assert stats['due'] == 2

        queue = get_study_queue(store, _catalog(), 'u1', desired_size=5, now=NOW)
        # equally overdue: lower ease first
        assert queue[:2] == ['n1', 'n0']
        assert queue[2:] == ['n2', 'n3', 'n4']


def test_queue_uses_recommended_size():
    """With no history the default accuracy gives a session of 23."""
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        catalog = CardCatalog(CatalogCard(f'n{i:02d}', position=i) for i in range(40))
        assert get_session_size(store, 'u1')['session_size'] == 23
        queue = get_study_queue(store, catalog, 'u1', now=NOW)
        assert queue == [f'n{i:02d}' for i in range(23)]


def test_session_size_follows_accuracy():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        for i in range(4):
            grade_card(store, 'u1', f'c{i}', 5, now=NOW)
        info = get_session_size(store, 'u1')
        assert info == {'session_size': 30, 'accuracy': 1.0, 'sessions_considered': 1}


def test_store_failure_propagates():
    """An unreachable store raises; it never looks like an empty queue."""
    with tempfile.TemporaryDirectory() as tmp:
        store = DownStore(Path(tmp) / 'progress.jsonl')
        with pytest.raises(StoreUnavailableError):
            get_study_queue(store, _catalog(), 'u1', desired_size=5, now=NOW)
        with pytest.raises(StoreUnavailableError):
            get_stats(store, 'u1', now=NOW)
        with pytest.raises(StoreUnavailableError):
            grade_card(store, 'u1', 'c1', 4, now=NOW)


def test_insights_include_session_size():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        grade_card(store, 'u1', 'n0', 0, now=NOW)
        insights = get_insights(store, _catalog(), 'u1', now=NOW)
        assert insights['optimal_session_size'] == 5
        assert insights['struggling_count'] == 1
        assert insights['weak_topics'] == ['kana']
        assert insights['performance']['cards_reviewed'] == 1
        assert insights['performance']['accuracy'] == 0.0


def test_naive_now_rejected():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        with pytest.raises(ValueError):
            grade_card(store, 'u1', 'c1', 4, now=datetime(2024, 3, 1))


def test_log_failure_keeps_stored_grade():
    """A grade whose state write landed is returned even if the log append fails."""
    with tempfile.TemporaryDirectory() as tmp:
        store = LogDownStore(Path(tmp) / 'progress.jsonl')
        state = grade_card(store, 'u1', 'c1', 4, now=NOW)
        assert state.version == 1
        assert store.get('u1', 'c1') == state

        # grading again advances exactly once more
        state = grade_card(store, 'u1', 'c1', 4, now=state.due_at)
        assert state.version == 2
        assert state.total_reviews == 2
        assert state.interval_days == 6


def test_two_stores_on_one_file_keep_both_grades():
    """Grades through separate stores on one path both land."""
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / 'progress.jsonl'
        grade_card(JsonlProgressStore(path), 'u1', 'c1', 4, now=NOW)
        a = JsonlProgressStore(path)
        b = JsonlProgressStore(path)

        grade_card(a, 'u1', 'c1', 4, now=NOW + timedelta(days=1))
        state = grade_card(b, 'u1', 'c1', 0, now=NOW + timedelta(days=2))
        assert state.version == 3
        assert state.total_reviews == 3
        assert state.correct_streak == 0

        reloaded = JsonlProgressStore(path).get('u1', 'c1')
        assert reloaded == state
        assert [e.quality for e in JsonlProgressStore(path).recent_reviews('u1')] == [4, 4, 0]


def test_streak_and_difficulty_tracked():
    with tempfile.TemporaryDirectory() as tmp:
        store = JsonlProgressStore(Path(tmp) / 'progress.jsonl')
        s = grade_card(store, 'u1', 'c1', 5, now=NOW)
        s = grade_card(store, 'u1', 'c1', 5, now=s.due_at)
        assert s.correct_streak == 2
        assert s.difficulty_adjustment == pytest.approx(-0.2)
        s = grade_card(store, 'u1', 'c1', 1, now=s.due_at)
        assert s.correct_streak == 0
        assert s.difficulty_adjustment == pytest.approx(0.0)
