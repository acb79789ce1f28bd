"""SM-2 spaced repetition scheduler."""

import math
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional

from study.models import DIFFICULTY_BOUND, MIN_EASE_FACTOR, MemoryState, require_aware
from study.quality import ReviewQuality


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Tunable SM-2 constants.

    The defaults are the published SM-2 values. max_ease is not part of
    classic SM-2; it stops intervals from running away on long streaks.
    """
    min_ease: float = MIN_EASE_FACTOR
    max_ease: float = 3.0
    ease_bonus: float = 0.1        # EF' = EF + (bonus - (5-q) * (linear + (5-q) * quadratic))
    ease_linear: float = 0.08
    ease_quadratic: float = 0.02
    first_interval: int = 1
    second_interval: int = 6
    lapse_interval: int = 1

    def __post_init__(self):
        if self.min_ease < MIN_EASE_FACTOR:
            raise ValueError(f"min_ease cannot go below {MIN_EASE_FACTOR}")
        if self.max_ease < self.min_ease:
            raise ValueError("max_ease must be >= min_ease")
        if min(self.first_interval, self.second_interval, self.lapse_interval) < 1:
            raise ValueError("Learning-phase intervals must be at least 1 day")


DEFAULT_CONFIG = SchedulerConfig()

# Difficulty drift per grade: failures push up, easy passes pull down
GRADE_DIFFICULTY = {0: 0.2, 1: 0.2, 2: 0.1, 3: 0.0, 4: -0.05, 5: -0.1}


def round_half_up(value: float) -> int:
    """Nearest integer, .5 rounds up (round() would go to even)."""
    return int(math.floor(value + 0.5))


def next_ease(ease_factor: float, grade: int, config: SchedulerConfig = DEFAULT_CONFIG) -> float:
    """SM-2 ease adjustment, clamped to [min_ease, max_ease]."""
    miss = 5 - grade
    ease = ease_factor + (config.ease_bonus - miss * (config.ease_linear + miss * config.ease_quadratic))
    ease = min(config.max_ease, max(config.min_ease, ease))
    return round(ease, 4)


def next_difficulty(
    state: MemoryState,
    grade: int,
    streak: int,
    response_ms: Optional[int],
    average_ms: float,
) -> float:
    """
    Performance-based difficulty, clamped to [-1, 1].

    Moves with the grade, with answer speed relative to the card's mean
    latency (after this review is folded in), and with the correct streak.
    Ranks due cards only; SM-2 intervals never read it.
    """
    adjustment = state.difficulty_adjustment + GRADE_DIFFICULTY[grade]

    if response_ms and average_ms > 0:
        ratio = response_ms / average_ms
        if ratio > 2.0:
            adjustment += 0.1
        elif ratio > 1.5:
            adjustment += 0.05
        elif ratio < 0.5:
            adjustment -= 0.05
        elif ratio < 0.7:
            adjustment -= 0.02

    if streak >= 10:
        adjustment -= 0.1
    elif streak >= 5:
        adjustment -= 0.05
    elif streak == 0 and state.total_reviews > 3:
        adjustment += 0.1

    return round(min(DIFFICULTY_BOUND, max(-DIFFICULTY_BOUND, adjustment)), 4)


def sm2_schedule(
    state: MemoryState,
    quality,
    now: datetime,
    response_ms: Optional[int] = None,
    config: SchedulerConfig = DEFAULT_CONFIG,
) -> MemoryState:
    """
    Apply one grading event to a memory state.

    Pure: returns a new MemoryState and leaves `state` untouched. The
    caller persists the result.

    Args:
        state:       Current memory state
        quality:     ReviewQuality, int 0-5 or member name
        now:         Timezone-aware time of the grading event
        response_ms: Optional answer latency, folded into the running mean
        config:      SM-2 constants

    Returns:
        MemoryState with updated repetitions, ease, interval, review time,
        counters, streak and difficulty. Its due_at is now + interval_days.

    Raises:
        InvalidQualityError: quality is not a recognized grade
        ValueError:          now is naive or response_ms is negative
    """
    grade = ReviewQuality.parse(quality)
    require_aware(now)
    if response_ms is not None and response_ms < 0:
        raise ValueError(f"response_ms cannot be negative, got {response_ms}")

    new_ease = next_ease(state.ease_factor, int(grade), config)

    if grade.is_lapse:
        # Lapse: card re-enters short-term learning
        new_reps = 0
        new_interval = config.lapse_interval
        correct, incorrect = state.correct_count, state.incorrect_count + 1
        streak = 0
    else:
        new_reps = state.repetitions + 1
        if new_reps == 1:
            new_interval = config.first_interval
        elif new_reps == 2:
            new_interval = config.second_interval
        else:
            new_interval = max(1, round_half_up(state.interval_days * new_ease))
        correct, incorrect = state.correct_count + 1, state.incorrect_count
        streak = state.correct_streak + 1

    avg_ms = state.average_response_ms
    samples = state.response_samples
    if response_ms is not None:
        # Running mean over the reviews that reported a latency
        avg_ms = round((avg_ms * samples + response_ms) / (samples + 1), 2)
        samples += 1

    return replace(
        state,
        repetitions=new_reps,
        ease_factor=new_ease,
        interval_days=new_interval,
        last_reviewed_at=now,
        correct_count=correct,
        incorrect_count=incorrect,
        total_reviews=state.total_reviews + 1,
        average_response_ms=avg_ms,
        response_samples=samples,
        correct_streak=streak,
        difficulty_adjustment=next_difficulty(state, int(grade), streak, response_ms, avg_ms),
    )
