"""Data models for the scheduling engine: MemoryState and ReviewEvent."""

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
DIFFICULTY_BOUND = 1.0


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def require_aware(ts: datetime, name: str = 'now') -> datetime:
    """Reject naive datetimes; comparing naive and aware values fails late."""
    if ts.tzinfo is None or ts.utcoffset() is None:
        raise ValueError(f"{name} must be timezone-aware, got naive {ts!r}")
    return ts


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    ts = datetime.fromisoformat(value)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass
class MemoryState:
    """
    Per-user, per-card spaced repetition memory.

    (user_id, card_id) is the identity key. due_at is derived from
    last_reviewed_at + interval_days and is never set directly; a card
    that was introduced but never reviewed is due from introduced_at.

    version is the optimistic-concurrency token owned by the store:
    0 means the state has never been persisted.
    """
    user_id: str
    card_id: str
    introduced_at: datetime = field(default_factory=utcnow)

    # SM-2 scheduling fields
    repetitions: int = 0
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval_days: int = 0
    last_reviewed_at: Optional[datetime] = None

    # Statistics only, never SM-2 inputs
    correct_count: int = 0
    incorrect_count: int = 0
    total_reviews: int = 0
    average_response_ms: float = 0.0
    response_samples: int = 0       # reviews that reported a latency

    # Performance signals used to rank due cards
    correct_streak: int = 0
    difficulty_adjustment: float = 0.0   # -1 (easy) .. +1 (hard)

    version: int = 0

    def __post_init__(self):
        if not self.user_id or not self.card_id:
            raise ValueError("user_id and card_id are required")
        if self.ease_factor < MIN_EASE_FACTOR:
            raise ValueError(f"Ease factor must be at least {MIN_EASE_FACTOR}, got {self.ease_factor}")
        if self.repetitions < 0:
            raise ValueError("Repetition count cannot be negative")
        if self.interval_days < 0:
            raise ValueError("Interval cannot be negative")
        if self.repetitions >= 1 and self.interval_days < 1:
            raise ValueError("Interval must be at least 1 day once a card has been recalled")
        if min(self.correct_count, self.incorrect_count, self.total_reviews) < 0:
            raise ValueError("Review counters cannot be negative")
        if self.total_reviews != self.correct_count + self.incorrect_count:
            raise ValueError(
                f"total_reviews ({self.total_reviews}) must equal correct_count + incorrect_count "
                f"({self.correct_count} + {self.incorrect_count})"
            )
        if self.average_response_ms < 0:
            raise ValueError("Average response time cannot be negative")
        if not 0 <= self.response_samples <= self.total_reviews:
            raise ValueError("response_samples must be within 0..total_reviews")
        if not 0 <= self.correct_streak <= self.correct_count:
            raise ValueError("correct_streak must be within 0..correct_count")
        if abs(self.difficulty_adjustment) > DIFFICULTY_BOUND:
            raise ValueError(f"difficulty_adjustment must be within +/-{DIFFICULTY_BOUND}")
        if self.version < 0:
            raise ValueError("Version cannot be negative")

    @property
    def key(self) -> tuple:
        return (self.user_id, self.card_id)

    @property
    def due_at(self) -> datetime:
        if self.last_reviewed_at is None:
            return self.introduced_at
        return self.last_reviewed_at + timedelta(days=self.interval_days)

    @property
    def is_new(self) -> bool:
        """Never reviewed."""
        return self.last_reviewed_at is None

    def with_version(self, version: int) -> 'MemoryState':
        return replace(self, version=version)

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['introduced_at'] = self.introduced_at.isoformat()
        d['last_reviewed_at'] = (
            self.last_reviewed_at.isoformat() if self.last_reviewed_at else None
        )
        # Informational copy; ignored by from_dict
        d['due_at'] = self.due_at.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> 'MemoryState':
        data = dict(data)  # shallow copy
        data['introduced_at'] = _parse_ts(data.get('introduced_at')) or utcnow()
        data['last_reviewed_at'] = _parse_ts(data.get('last_reviewed_at'))
        # Filter to known fields only
        known = cls.__dataclass_fields__
        data = {k: v for k, v in data.items() if k in known}
        return cls(**data)


def new_memory_state(user_id: str, card_id: str, now: Optional[datetime] = None) -> MemoryState:
    """Creation defaults for a card's first exposure: due immediately."""
    now = require_aware(now) if now is not None else utcnow()
    return MemoryState(user_id=user_id, card_id=card_id, introduced_at=now)


def reset_state(state: MemoryState, now: Optional[datetime] = None) -> MemoryState:
    """
    Reinitialize scheduling fields and ranking signals to creation defaults.

    Statistics counters are monotonic and survive a reset; the store
    version is kept so the write is still conflict-checked.
    """
    now = require_aware(now) if now is not None else utcnow()
    return replace(
        state,
        introduced_at=now,
        repetitions=0,
        ease_factor=DEFAULT_EASE_FACTOR,
        interval_days=0,
        last_reviewed_at=None,
        correct_streak=0,
        difficulty_adjustment=0.0,
    )


@dataclass
class ReviewEvent:
    """One grading event, appended to the review log after a successful write."""
    user_id: str
    card_id: str
    quality: int
    reviewed_at: datetime
    interval_days: int
    ease_factor: float
    response_ms: Optional[int] = None

    @property
    def is_correct(self) -> bool:
        return self.quality >= 3

    def to_dict(self) -> Dict:
        d = asdict(self)
        d['reviewed_at'] = self.reviewed_at.isoformat()
        return d

    @classmethod
    def from_dict(cls, data: Dict) -> 'ReviewEvent':
        data = dict(data)
        data['reviewed_at'] = _parse_ts(data['reviewed_at'])
        known = cls.__dataclass_fields__
        return cls(**{k: v for k, v in data.items() if k in known})
