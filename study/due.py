"""Due-card selection: which memory states need review now."""

from datetime import datetime
from typing import List

from study.models import DEFAULT_EASE_FACTOR, MemoryState, require_aware
from study.storage import ProgressStore


def is_due(state: MemoryState, as_of: datetime) -> bool:
    return state.due_at <= as_of


def overdue_days(state: MemoryState, as_of: datetime) -> float:
    """Days past due (0.0 if not yet due)."""
    delta = (as_of - state.due_at).total_seconds() / 86400.0
    return max(0.0, delta)


def priority_score(state: MemoryState, as_of: datetime) -> float:
    """
    Urgency of a due card (higher = more urgent), never below 0.

    Whole overdue days, plus ease below the 2.5 default, plus learned
    difficulty, minus a little per consecutive correct answer.
    """
    score = float(int(overdue_days(state, as_of)))
    score += (DEFAULT_EASE_FACTOR - state.ease_factor) * 2
    score += state.difficulty_adjustment * 3
    score -= state.correct_streak * 0.1
    return max(0.0, score)


def select_due(states: List[MemoryState], as_of: datetime, limit: int) -> List[MemoryState]:
    """
    Filter and order already-loaded states.

    Order: most overdue first, then lowest ease (struggling cards surface
    first), then highest priority_score, then card_id so equal records
    come back in a stable order.
    """
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
    require_aware(as_of, 'as_of')
    due = [s for s in states if is_due(s, as_of)]
    due.sort(key=lambda s: (s.due_at, s.ease_factor, -priority_score(s, as_of), s.card_id))
    return due[:limit]


def find_due(store: ProgressStore, user_id: str, as_of: datetime, limit: int) -> List[MemoryState]:
    """
    Return at most `limit` of the user's cards with due_at <= as_of.

    Never pads with not-yet-due cards. Store errors propagate.
    """
    return select_due(store.query_by_user(user_id), as_of, limit)
