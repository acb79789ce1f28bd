"""Progress statistics and learning insights over memory states."""

from datetime import datetime, timedelta
from typing import Dict, List, Optional

from study.catalog import CardCatalog, JLPT_LEVELS
from study.due import is_due
from study.models import MIN_EASE_FACTOR, MemoryState

# Status thresholds
MASTERED_INTERVAL_DAYS = 21
REVIEWING_REPETITIONS = 2

# Mastery bands for insights
MASTERED_LEVEL = 0.8
STRUGGLING_LEVEL = 0.3

STATUSES = ('new', 'learning', 'reviewing', 'mastered')

PERFORMANCE_WINDOW_DAYS = 30

CONSISTENT_IMPROVEMENT = 'CONSISTENT_IMPROVEMENT'
RETENTION_ISSUES = 'RETENTION_ISSUES'
FAST_LEARNER = 'FAST_LEARNER'
NEEDS_MORE_PRACTICE = 'NEEDS_MORE_PRACTICE'


def card_status(state: MemoryState) -> str:
    """
    Bucket a card:
        new        never reviewed
        mastered   interval >= 21 days
        reviewing  two or more consecutive passes
        learning   first pass or recently lapsed
    """
    if state.is_new:
        return 'new'
    if state.interval_days >= MASTERED_INTERVAL_DAYS:
        return 'mastered'
    if state.repetitions >= REVIEWING_REPETITIONS:
        return 'reviewing'
    return 'learning'


def compute_stats(states: List[MemoryState], as_of: Optional[datetime] = None) -> Dict:
    """
    Returns:
        {new, learning, reviewing, mastered, total[, due]}
    `due` is only included when as_of is given.
    """
    counts = {status: 0 for status in STATUSES}
    for state in states:
        counts[card_status(state)] += 1
    counts['total'] = len(states)
    if as_of is not None:
        counts['due'] = sum(1 for s in states if is_due(s, as_of))
    return counts


def card_mastery(state: MemoryState, max_ease: float = 3.0) -> float:
    """
    Estimated mastery 0..1.

    Heuristics:
        - 50% lifetime accuracy (correct / total)
        - 30% ease, normalized over [1.3, max_ease]
        - 20% interval, capped at 30 days
    """
    if state.total_reviews == 0:
        return 0.0
    accuracy = state.correct_count / state.total_reviews
    ease_span = max(max_ease - MIN_EASE_FACTOR, 1e-9)
    ease_score = (state.ease_factor - MIN_EASE_FACTOR) / ease_span
    interval_score = min(state.interval_days / 30.0, 1.0)
    score = accuracy * 0.5 + ease_score * 0.3 + interval_score * 0.2
    return max(0.0, min(1.0, score))


def retention_rate(states: List[MemoryState]) -> float:
    """Share of cards reviewed more than once whose last answer was correct."""
    repeated = [s for s in states if s.total_reviews > 1]
    if not repeated:
        return 0.0
    return sum(1 for s in repeated if s.correct_streak > 0) / len(repeated)


def learning_patterns(states: List[MemoryState]) -> List[str]:
    """
    Flag broad learning patterns. A pattern holds when more than a fixed
    share of the cards fits it:
        CONSISTENT_IMPROVEMENT  >30% with ease > 2.5 and streak >= 3
        RETENTION_ISSUES        >20% with ease < 2.0 after more than 5 reviews
        FAST_LEARNER            >40% mastered within 3 reviews
        NEEDS_MORE_PRACTICE     >15% below 0.5 mastery after more than 10 reviews
    """
    n = len(states)
    if n == 0:
        return []
    mastery = [card_mastery(s) for s in states]
    checks = (
        (CONSISTENT_IMPROVEMENT, 0.3,
         sum(1 for s in states if s.ease_factor > 2.5 and s.correct_streak >= 3)),
        (RETENTION_ISSUES, 0.2,
         sum(1 for s in states if s.ease_factor < 2.0 and s.total_reviews > 5)),
        (FAST_LEARNER, 0.4,
         sum(1 for s, m in zip(states, mastery) if m >= MASTERED_LEVEL and s.total_reviews <= 3)),
        (NEEDS_MORE_PRACTICE, 0.15,
         sum(1 for s, m in zip(states, mastery) if s.total_reviews > 10 and m < 0.5)),
    )
    return [name for name, share, count in checks if count > n * share]


def performance_analysis(
    states: List[MemoryState],
    as_of: datetime,
    window_days: int = PERFORMANCE_WINDOW_DAYS,
) -> Dict:
    """
    Performance over cards reviewed within the last `window_days`.

    Returns:
        {
            window_days, cards_reviewed, total_reviews, accuracy,
            average_ease, average_mastery, average_response_ms,
            learning_velocity (mastered cards per day), retention_rate,
            patterns: [name, ...],
        }
    Accuracy is lifetime correct / total over those cards.
    """
    if window_days < 1:
        raise ValueError(f"window_days must be at least 1, got {window_days}")
    cutoff = as_of - timedelta(days=window_days)
    recent = [s for s in states if s.last_reviewed_at is not None and s.last_reviewed_at > cutoff]

    analysis = {
        'window_days': window_days,
        'cards_reviewed': len(recent),
        'total_reviews': 0,
        'accuracy': 0.0,
        'average_ease': 0.0,
        'average_mastery': 0.0,
        'average_response_ms': 0.0,
        'learning_velocity': 0.0,
        'retention_rate': 0.0,
        'patterns': [],
    }
    if not recent:
        return analysis

    total = sum(s.total_reviews for s in recent)
    correct = sum(s.correct_count for s in recent)
    mastery = [card_mastery(s) for s in recent]
    timed = [s.average_response_ms for s in recent if s.response_samples > 0]

    analysis.update({
        'total_reviews': total,
        'accuracy': round(correct / total, 4) if total else 0.0,
        'average_ease': round(sum(s.ease_factor for s in recent) / len(recent), 4),
        'average_mastery': round(sum(mastery) / len(mastery), 4),
        'average_response_ms': round(sum(timed) / len(timed), 2) if timed else 0.0,
        'learning_velocity': round(sum(1 for m in mastery if m >= MASTERED_LEVEL) / window_days, 4),
        'retention_rate': round(retention_rate(recent), 4),
        'patterns': learning_patterns(recent),
    })
    return analysis


def new_card_budget(due_count: int, fallback: int = 7) -> int:
    """How many new cards to suggest given the review backlog."""
    if due_count > 30:
        return 0  # clear the backlog first
    if due_count > 15:
        return 3
    if due_count > 5:
        return 5
    return fallback


def _weakest(groups: Dict[str, List[float]], n: int) -> List[str]:
    averaged = [(key, sum(vals) / len(vals)) for key, vals in groups.items() if vals]
    averaged.sort(key=lambda kv: (kv[1], kv[0]))
    return [key for key, _ in averaged[:n]]


def learning_insights(
    states: List[MemoryState],
    catalog: CardCatalog,
    as_of: datetime,
) -> Dict:
    """
    Summarize where the learner stands and what to do next.

    Returns:
        {
            due_count, new_cards_recommended, mastered_count,
            struggling_count, weak_topics: [topic, ...] (up to 3),
            weak_levels: [level, ...] (up to 2), recommendations: [str, ...],
            performance: performance_analysis(...),
        }
    """
    reviewed = [s for s in states if not s.is_new]
    due_count = sum(1 for s in states if is_due(s, as_of))
    mastery = {s.card_id: card_mastery(s) for s in reviewed}
    mastered_count = sum(1 for m in mastery.values() if m >= MASTERED_LEVEL)
    struggling_count = sum(1 for m in mastery.values() if m < STRUGGLING_LEVEL)

    by_topic: Dict[str, List[float]] = {}
    by_level: Dict[str, List[float]] = {}
    for card_id, m in mastery.items():
        entry = catalog.get(card_id)
        if entry is None:
            continue
        if entry.topic:
            by_topic.setdefault(entry.topic, []).append(m)
        by_level.setdefault(entry.level, []).append(m)

    weak_topics = _weakest(by_topic, 3)
    weak_levels = sorted(
        _weakest(by_level, 2),
        key=lambda lv: JLPT_LEVELS.index(lv) if lv in JLPT_LEVELS else len(JLPT_LEVELS),
    )

    recommendations: List[str] = []
    if due_count > 20:
        recommendations.append(
            f"You have {due_count} cards due for review. "
            "Consider focusing on reviews before learning new cards."
        )
    if struggling_count > 5:
        recommendations.append(
            f"You're struggling with {struggling_count} cards. "
            "Try breaking study sessions into smaller chunks."
        )
    if weak_topics:
        recommendations.append(f"Focus on these topics: {', '.join(weak_topics)}")
    if not reviewed:
        recommendations.append("Start with a few new cards. Even 5 minutes daily makes a difference.")

    performance = performance_analysis(states, as_of)
    if RETENTION_ISSUES in performance['patterns']:
        recommendations.append("Many cards keep slipping. Review them again before adding new ones.")
    if NEEDS_MORE_PRACTICE in performance['patterns']:
        recommendations.append("Some cards are still shaky after many reviews. Try mnemonics or example sentences.")

    return {
        'due_count': due_count,
        'new_cards_recommended': new_card_budget(due_count),
        'mastered_count': mastered_count,
        'struggling_count': struggling_count,
        'weak_topics': weak_topics,
        'weak_levels': weak_levels,
        'recommendations': recommendations,
        'performance': performance,
    }
