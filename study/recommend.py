"""Study queue recommendation and session sizing."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

from study.catalog import CardCatalog
from study.due import find_due
from study.models import ReviewEvent, require_aware, utcnow
from study.scheduler import round_half_up
from study.storage import ProgressStore


@dataclass(frozen=True)
class SessionConfig:
    """Session-sizing policy. Accuracy maps linearly onto [min, max]."""
    min_session_size: int = 5
    max_session_size: int = 30
    recent_sessions: int = 5
    default_accuracy: float = 0.7
    max_new_cards_per_session: Optional[int] = None
    review_log_window: int = 500

    def __post_init__(self):
        if self.min_session_size < 1:
            raise ValueError("min_session_size must be at least 1")
        if self.max_new_cards_per_session is not None and self.max_new_cards_per_session < 0:
            raise ValueError("max_new_cards_per_session must be >= 0")
        if self.max_session_size < self.min_session_size:
            raise ValueError("max_session_size must be >= min_session_size")
        if self.recent_sessions < 1:
            raise ValueError("recent_sessions must be at least 1")
        if not 0.0 <= self.default_accuracy <= 1.0:
            raise ValueError("default_accuracy must be within 0..1")


DEFAULT_SESSION_CONFIG = SessionConfig()


def sessions_from_reviews(events: List[ReviewEvent]) -> List[Dict]:
    """
    Group review events into study sessions, one per UTC calendar day.

    Returns sessions oldest first:
        [{day, reviewed, correct, accuracy}, ...]
    """
    by_day: Dict[str, List[ReviewEvent]] = {}
    for ev in events:
        by_day.setdefault(_utc_day(ev), []).append(ev)
    sessions = []
    for day in sorted(by_day):
        evs = by_day[day]
        correct = sum(1 for e in evs if e.is_correct)
        sessions.append({
            'day': day,
            'reviewed': len(evs),
            'correct': correct,
            'accuracy': correct / len(evs),
        })
    return sessions


def _utc_day(event: ReviewEvent) -> str:
    return event.reviewed_at.astimezone(timezone.utc).date().isoformat()


def recent_accuracy(sessions: List[Dict], config: SessionConfig = DEFAULT_SESSION_CONFIG) -> float:
    """Mean per-session accuracy over the last N sessions (default if none)."""
    recent = sessions[-config.recent_sessions:]
    if not recent:
        return config.default_accuracy
    return sum(s['accuracy'] for s in recent) / len(recent)


def optimal_session_size(sessions: List[Dict], config: SessionConfig = DEFAULT_SESSION_CONFIG) -> int:
    """
    Recommended session size from recent performance.

    size = round(min + (max - min) * accuracy): 0% accuracy gives the
    floor, 100% the ceiling, monotonic in between.
    """
    accuracy = min(1.0, max(0.0, recent_accuracy(sessions, config)))
    span = config.max_session_size - config.min_session_size
    return round_half_up(config.min_session_size + span * accuracy)


def recommend(
    store: ProgressStore,
    catalog: CardCatalog,
    user_id: str,
    session_size: int,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> List[str]:
    """
    Build a bounded study queue of card ids.

    Due cards come first (most overdue, then lowest ease). Remaining
    slots are filled with cards the user has never reviewed, in catalog
    order, up to the session size. When max_new_cards_per_session is
    set it also caps the new cards, leaving the queue short. Store
    failures propagate; an empty list always means nothing to study.
    """
    if session_size < 0:
        raise ValueError(f"session_size must be >= 0, got {session_size}")
    now = require_aware(now) if now is not None else utcnow()
    if session_size == 0:
        return []

    due = find_due(store, user_id, now, session_size)
    queue = [s.card_id for s in due]

    remaining = session_size - len(queue)
    if remaining > 0:
        reviewed = {s.card_id for s in store.query_by_user(user_id) if not s.is_new}
        exclude = reviewed | set(queue)
        budget = remaining
        if config.max_new_cards_per_session is not None:
            budget = min(budget, config.max_new_cards_per_session)
        queue.extend(catalog.new_card_ids(exclude, limit=budget))
    return queue
