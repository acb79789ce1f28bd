"""Study engine service wrappers -- all return JSON-serializable dicts."""

import sys
from pathlib import Path
from typing import Dict, Optional

_project_root = str(Path(__file__).resolve().parent.parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from study import engine
from study.catalog import CardCatalog
from study.due import find_due
from study.models import MemoryState, utcnow
from study.recommend import DEFAULT_SESSION_CONFIG, SessionConfig
from study.scheduler import DEFAULT_CONFIG, SchedulerConfig
from study.storage import ProgressStore


def _state_to_dict(state: MemoryState) -> Dict:
    """MemoryState as a JSON-safe dict, including the derived due_at."""
    return state.to_dict()


def review_card(
    store: ProgressStore,
    user_id: str,
    card_id: str,
    quality,
    response_ms: Optional[int] = None,
    config: SchedulerConfig = DEFAULT_CONFIG,
    max_attempts: int = engine.MAX_WRITE_ATTEMPTS,
) -> Dict:
    """Grade a card and return its new memory state."""
    state = engine.grade_card(
        store, user_id, card_id, quality,
        response_ms=response_ms, config=config, max_attempts=max_attempts,
    )
    return _state_to_dict(state)


def get_card(store: ProgressStore, user_id: str, card_id: str) -> Dict:
    return _state_to_dict(engine.get_card_state(store, user_id, card_id))


def reset_card(store: ProgressStore, user_id: str, card_id: str) -> Dict:
    return _state_to_dict(engine.reset_card(store, user_id, card_id))


def get_due(store: ProgressStore, user_id: str, limit: int = 50) -> Dict:
    """Due cards, most overdue first."""
    due = find_due(store, user_id, utcnow(), limit)
    return {
        'due_count': len(due),
        'cards': [_state_to_dict(s) for s in due],
    }


def get_queue(
    store: ProgressStore,
    catalog: CardCatalog,
    user_id: str,
    size: Optional[int] = None,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> Dict:
    """Study queue; size=None uses the recommended session size."""
    if size is None:
        size = engine.get_session_size(store, user_id, config)['session_size']
    card_ids = engine.get_study_queue(store, catalog, user_id, desired_size=size, config=config)
    return {
        'session_size': size,
        'card_ids': card_ids,
    }


def get_stats(store: ProgressStore, user_id: str) -> Dict:
    return engine.get_stats(store, user_id)


def get_session_size(
    store: ProgressStore,
    user_id: str,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> Dict:
    return engine.get_session_size(store, user_id, config)


def get_insights(
    store: ProgressStore,
    catalog: CardCatalog,
    user_id: str,
    config: SessionConfig = DEFAULT_SESSION_CONFIG,
) -> Dict:
    return engine.get_insights(store, catalog, user_id, config=config)
