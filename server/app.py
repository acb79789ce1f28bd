"""FastAPI application -- routes for the Sakura progress service."""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware

from server.__version__ import __version__
from server.config import Settings
from server.dependencies import (
    get_catalog,
    get_progress_store,
    get_scheduler_config,
    get_session_config,
    get_settings,
)
from server.schemas import (
    DueResponse,
    HealthResponse,
    InsightsResponse,
    MemoryStateResponse,
    QueueResponse,
    ReviewRequest,
    SessionSizeResponse,
    StatsResponse,
)
from server.services import study_service
from study.catalog import CardCatalog
from study.errors import (
    ConcurrentModificationError,
    InvalidQualityError,
    RecordNotFoundError,
    SchedulingError,
    StoreUnavailableError,
)
from study.recommend import SessionConfig
from study.scheduler import SchedulerConfig
from study.storage import ProgressStore

logger = logging.getLogger("sakura")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan: create tables for the SQL backend. Store and catalog are built lazily."""
    settings = get_settings()
    if settings.progress_backend == "sql":
        from server.db.session import init_db
        init_db(settings)
    ts = datetime.now(timezone.utc).isoformat()
    logger.info("[%s] Startup: backend=%s", ts, settings.progress_backend)
    yield
    logger.info("[%s] Shutdown: complete", datetime.now(timezone.utc).isoformat())


app = FastAPI(title="Sakura", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _status_for(e: SchedulingError) -> int:
    if isinstance(e, InvalidQualityError):
        return 422
    if isinstance(e, RecordNotFoundError):
        return 404
    if isinstance(e, ConcurrentModificationError):
        return 409
    if isinstance(e, StoreUnavailableError):
        return 503
    return 400


def _http_error(e: SchedulingError) -> HTTPException:
    status = _status_for(e)
    if status >= 500:
        logger.error("Progress store unavailable: %s", e)
    return HTTPException(status_code=status, detail=str(e))


@app.get("/health", response_model=HealthResponse)
def health():
    """Minimal health check. No store access."""
    return {"status": "ok", "version": __version__}


# ---- Progress ----

@app.post("/users/{user_id}/reviews", response_model=MemoryStateResponse)
def review(
    user_id: str,
    body: ReviewRequest,
    store: ProgressStore = Depends(get_progress_store),
    config: SchedulerConfig = Depends(get_scheduler_config),
    settings: Settings = Depends(get_settings),
):
    """Grade a card; creates its progress on first review."""
    try:
        return study_service.review_card(
            store, user_id, body.card_id, body.quality,
            response_ms=body.response_ms,
            config=config,
            max_attempts=settings.max_write_attempts,
        )
    except SchedulingError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/cards/{card_id}", response_model=MemoryStateResponse)
def card_state(
    user_id: str,
    card_id: str,
    store: ProgressStore = Depends(get_progress_store),
):
    try:
        return study_service.get_card(store, user_id, card_id)
    except SchedulingError as e:
        raise _http_error(e)


@app.post("/users/{user_id}/cards/{card_id}/reset", response_model=MemoryStateResponse)
def reset(
    user_id: str,
    card_id: str,
    store: ProgressStore = Depends(get_progress_store),
):
    """Reset a card's schedule; it becomes due immediately."""
    try:
        return study_service.reset_card(store, user_id, card_id)
    except SchedulingError as e:
        raise _http_error(e)


# ---- Selection ----

@app.get("/users/{user_id}/due", response_model=DueResponse)
def due(
    user_id: str,
    limit: int = Query(default=50, ge=0, le=1000),
    store: ProgressStore = Depends(get_progress_store),
):
    try:
        return study_service.get_due(store, user_id, limit)
    except SchedulingError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/queue", response_model=QueueResponse)
def queue(
    user_id: str,
    size: Optional[int] = Query(default=None, ge=0, le=200),
    store: ProgressStore = Depends(get_progress_store),
    catalog: CardCatalog = Depends(get_catalog),
    config: SessionConfig = Depends(get_session_config),
):
    """Due reviews first, then new cards in catalog order."""
    try:
        return study_service.get_queue(
            store, catalog, user_id, size=size, config=config,
        )
    except SchedulingError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/session-size", response_model=SessionSizeResponse)
def session_size(
    user_id: str,
    store: ProgressStore = Depends(get_progress_store),
    config: SessionConfig = Depends(get_session_config),
):
    try:
        return study_service.get_session_size(store, user_id, config)
    except SchedulingError as e:
        raise _http_error(e)


# ---- Stats ----

@app.get("/users/{user_id}/stats", response_model=StatsResponse)
def stats(
    user_id: str,
    store: ProgressStore = Depends(get_progress_store),
):
    try:
        return study_service.get_stats(store, user_id)
    except SchedulingError as e:
        raise _http_error(e)


@app.get("/users/{user_id}/insights", response_model=InsightsResponse)
def insights(
    user_id: str,
    store: ProgressStore = Depends(get_progress_store),
    catalog: CardCatalog = Depends(get_catalog),
    config: SessionConfig = Depends(get_session_config),
):
    try:
        return study_service.get_insights(store, catalog, user_id, config)
    except SchedulingError as e:
        raise _http_error(e)
