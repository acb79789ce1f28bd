"""Engine entry points: grade a card, build a study queue, report stats."""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from study.analytics import compute_stats, learning_insights
from study.catalog import CardCatalog
from study.errors import ConcurrentModificationError, RecordNotFoundError
from study.models import MemoryState, ReviewEvent, new_memory_state, require_aware, reset_state, utcnow
from study.quality import ReviewQuality
from study.recommend import (
    DEFAULT_SESSION_CONFIG,
    SessionConfig,
    optimal_session_size,
    recent_accuracy,
    recommend,
    sessions_from_reviews,
)
from study.scheduler import DEFAULT_CONFIG, SchedulerConfig, sm2_schedule
from study.storage import ProgressStore

logger = logging.getLogger("sakura.study")

MAX_WRITE_ATTEMPTS = 3


def _resolve_now(now: Optional[datetime]) -> datetime:
    return require_aware(now) if now is not None else utcnow()


def grade_card(
    store: ProgressStore,
    user_id: str,
    card_id: str,
    quality,
    now: Optional[datetime] = None,
    response_ms: Optional[int] = None,
    config: SchedulerConfig = DEFAULT_CONFIG,
    max_attempts: int = MAX_WRITE_ATTEMPTS,
) -> MemoryState:
    """
    Grade a card: read -> schedule -> conditional write plus review log.

    A card with no stored state is created implicitly with the creation
    defaults (first exposure) before the grade is applied. On a version
    conflict the cycle is re-run against a fresh read, up to
    `max_attempts` attempts in total. Once the state write succeeds the
    grade is returned; a review-log failure after that point does not
    fail the call (see ProgressStore.record_grade).

    Raises:
        InvalidQualityError:          quality not recognized (nothing is written)
        ConcurrentModificationError:  every attempt lost the race
        StoreUnavailableError:        the store could not be reached
    """
    if max_attempts < 1:
        raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
    # Validate before touching the store
    grade = ReviewQuality.parse(quality)
    now = _resolve_now(now)

    last_error: Optional[ConcurrentModificationError] = None
    for attempt in range(1, max_attempts + 1):
        current = store.get(user_id, card_id)
        if current is None:
            current = new_memory_state(user_id, card_id, now)
        updated = sm2_schedule(current, grade, now, response_ms=response_ms, config=config)
        event = ReviewEvent(
            user_id=user_id,
            card_id=card_id,
            quality=int(grade),
            reviewed_at=now,
            interval_days=updated.interval_days,
            ease_factor=updated.ease_factor,
            response_ms=response_ms,
        )
        try:
            stored = store.record_grade(updated, current.version, event)
        except ConcurrentModificationError as e:
            last_error = e
            logger.warning(
                "Version conflict grading user=%s card=%s (attempt %d/%d)",
                user_id, card_id, attempt, max_attempts,
            )
            continue

        logger.debug(
            "Graded user=%s card=%s q=%d -> interval=%dd ease=%.2f",
            user_id, card_id, int(grade), stored.interval_days, stored.ease_factor,
        )
        return stored

    logger.error("Giving up grading user=%s card=%s after %d attempts", user_id, card_id, max_attempts)
    raise last_error


def get_card_state(store: ProgressStore, user_id: str, card_id: str) -> MemoryState:
    state = store.get(user_id, card_id)
    if state is None:
        raise RecordNotFoundError(user_id, card_id)
    return state


def reset_card(
    store: ProgressStore,
    user_id: str,
    card_id: str,
    now: Optional[datetime] = None,
) -> MemoryState:
    """Reinitialize a card's schedule in place. The record is never deleted."""
    now = _resolve_now(now)
    current = get_card_state(store, user_id, card_id)
    stored = store.put(reset_state(current, now), expected_version=current.version)
    logger.info("Reset progress user=%s card=%s", user_id, card_id)
    return stored


def get_recent_sessions(
    store: ProgressStore,
    user_id: str,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> List[Dict]:
    events = store.recent_reviews(user_id, limit=config.review_log_window)
    return sessions_from_reviews(events)


def get_session_size(
    store: ProgressStore,
    user_id: str,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> Dict:
    """Returns {session_size, accuracy, sessions_considered}."""
    sessions = get_recent_sessions(store, user_id, config)
    return {
        'session_size': optimal_session_size(sessions, config),
        'accuracy': round(recent_accuracy(sessions, config), 4),
        'sessions_considered': min(len(sessions), config.recent_sessions),
    }


def get_study_queue(
    store: ProgressStore,
    catalog: CardCatalog,
    user_id: str,
    desired_size: Optional[int] = None,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> List[str]:
    """Study queue of card ids; desired_size=None uses the recommended session size."""
    now = _resolve_now(now)
    if desired_size is None:
        desired_size = optimal_session_size(get_recent_sessions(store, user_id, config), config)
    return recommend(store, catalog, user_id, desired_size, now=now, config=config)


def get_stats(store: ProgressStore, user_id: str, now: Optional[datetime] = None) -> Dict:
    """Returns {new, learning, reviewing, mastered, total, due}."""
    return compute_stats(store.query_by_user(user_id), as_of=_resolve_now(now))


def get_insights(
    store: ProgressStore,
    catalog: CardCatalog,
    user_id: str,
    now: Optional[datetime] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> Dict:
    """learning_insights plus the recommended session size."""
    now = _resolve_now(now)
    insights = learning_insights(store.query_by_user(user_id), catalog, now)
    insights['optimal_session_size'] = optimal_session_size(
        get_recent_sessions(store, user_id, config), config,
    )
    return insights
