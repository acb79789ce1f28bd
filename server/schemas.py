"""Pydantic request/response schemas for the Sakura progress API."""

from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, Field


# ---- Progress ----

class MemoryStateResponse(BaseModel):
    user_id: str
    card_id: str
    introduced_at: datetime
    repetitions: int
    ease_factor: float
    interval_days: int
    last_reviewed_at: Optional[datetime] = None
    due_at: datetime
    correct_count: int
    incorrect_count: int
    total_reviews: int
    average_response_ms: float
    response_samples: int
    correct_streak: int
    difficulty_adjustment: float
    version: int


class ReviewRequest(BaseModel):
    card_id: str = Field(..., min_length=1, max_length=128)
    # 0-5 or a grade name; validated by the engine so bad values map to 422 uniformly
    quality: Union[int, str]
    response_ms: Optional[int] = Field(default=None, ge=0)


# ---- Selection ----

class DueResponse(BaseModel):
    due_count: int
    cards: List[MemoryStateResponse]


class QueueResponse(BaseModel):
    session_size: int
    card_ids: List[str]


class SessionSizeResponse(BaseModel):
    session_size: int
    accuracy: float
    sessions_considered: int


# ---- Stats ----

class StatsResponse(BaseModel):
    new: int
    learning: int
    reviewing: int
    mastered: int
    total: int
    due: int


class PerformanceResponse(BaseModel):
    window_days: int
    cards_reviewed: int
    total_reviews: int
    accuracy: float
    average_ease: float
    average_mastery: float
    average_response_ms: float
    learning_velocity: float
    retention_rate: float
    patterns: List[str]


class InsightsResponse(BaseModel):
    due_count: int
    new_cards_recommended: int
    mastered_count: int
    struggling_count: int
    weak_topics: List[str]
    weak_levels: List[str]
    recommendations: List[str]
    performance: PerformanceResponse
    optimal_session_size: int


class HealthResponse(BaseModel):
    status: str
    version: str
