"""Tests for study/models.py -- MemoryState invariants and serialization."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest
from study.models import MemoryState, ReviewEvent, new_memory_state, reset_state


NOW = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


def test_new_state_defaults():
    """First exposure: reps 0, ease 2.5, due immediately."""
    state = new_memory_state('u1', 'c1', NOW)
    assert state.repetitions == 0
    assert state.ease_factor == 2.5
    assert state.interval_days == 0
    assert state.last_reviewed_at is None
    assert state.is_new
    assert state.due_at == NOW
    assert state.version == 0


def test_due_at_derived_from_last_review():
    state = MemoryState(
        user_id='u1', card_id='c1', introduced_at=NOW - timedelta(days=30),
        repetitions=2, interval_days=6, last_reviewed_at=NOW,
        correct_count=2, total_reviews=2,
    )
    assert state.due_at == NOW + timedelta(days=6)


def test_invariants_rejected():
    """Bad field combinations raise on construction."""
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', ease_factor=1.2)
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', repetitions=-1)
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', repetitions=1, interval_days=0)
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', correct_count=1, total_reviews=2)
    with pytest.raises(ValueError):
        MemoryState(user_id='', card_id='c1')
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', correct_streak=1)
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', difficulty_adjustment=1.5)
    with pytest.raises(ValueError):
        MemoryState(user_id='u1', card_id='c1', response_samples=1)


def test_naive_now_rejected():
    with pytest.raises(ValueError):
        new_memory_state('u1', 'c1', datetime(2024, 3, 1))


def test_dict_roundtrip_keeps_timezone():
    """to_dict/from_dict preserve every field; due_at is recomputed, not stored."""
    state = MemoryState(
        user_id='u1', card_id='c1', introduced_at=NOW - timedelta(days=3),
        repetitions=1, interval_days=1, last_reviewed_at=NOW,
        correct_count=1, total_reviews=1, average_response_ms=850.0, version=4,
    )
    data = state.to_dict()
    assert data['due_at'] == (NOW + timedelta(days=1)).isoformat()
    restored = MemoryState.from_dict(data)
    assert restored == state
    assert restored.last_reviewed_at.tzinfo is not None


def test_from_dict_ignores_unknown_fields():
    data = new_memory_state('u1', 'c1', NOW).to_dict()
    data['legacy_field'] = 'x'
    assert MemoryState.from_dict(data).card_id == 'c1'


def test_reset_keeps_counters_and_version():
    """Reset restores scheduling defaults but not history."""
    state = MemoryState(
        user_id='u1', card_id='c1', introduced_at=NOW - timedelta(days=90),
        repetitions=4, ease_factor=2.8, interval_days=40,
        last_reviewed_at=NOW - timedelta(days=2),
        correct_count=5, incorrect_count=1, total_reviews=6, version=7,
        correct_streak=4, difficulty_adjustment=-0.3, response_samples=2, average_response_ms=900.0,
    )
    fresh = reset_state(state, NOW)
    assert fresh.repetitions == 0
    assert fresh.ease_factor == 2.5
    assert fresh.interval_days == 0
    assert fresh.last_reviewed_at is None
    assert fresh.due_at == NOW
    assert fresh.total_reviews == 6
    assert fresh.version == 7
    assert fresh.correct_streak == 0
    assert fresh.difficulty_adjustment == 0.0
    assert fresh.response_samples == 2


def test_review_event_roundtrip():
    event = ReviewEvent(
        user_id='u1', card_id='c1', quality=2, reviewed_at=NOW,
        interval_days=1, ease_factor=2.18,
    )
    assert not event.is_correct
    assert ReviewEvent.from_dict(event.to_dict()) == event
