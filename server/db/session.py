"""Engines and sessions, cached per database URL."""

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import Dict

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session as DBSession, sessionmaker

from server.config import Settings
from server.db.models import Base
from study.errors import StoreUnavailableError

logger = logging.getLogger("sakura.db")

_lock = threading.Lock()
_engines: Dict[str, Engine] = {}
_factories: Dict[str, sessionmaker] = {}


def _connect_args(settings: Settings) -> dict:
    if settings.database_url.startswith("sqlite"):
        # FastAPI serves sync routes from a threadpool
        return {"check_same_thread": False, "timeout": settings.db_connect_timeout_s}
    return {"connect_timeout": settings.db_connect_timeout_s}


def get_engine(settings: Settings) -> Engine:
    url = settings.database_url
    with _lock:
        engine = _engines.get(url)
        if engine is None:
            engine = create_engine(
                url,
                pool_pre_ping=not url.startswith("sqlite"),
                connect_args=_connect_args(settings),
            )
            _engines[url] = engine
    return engine


def get_session_factory(settings: Settings) -> sessionmaker:
    url = settings.database_url
    engine = get_engine(settings)
    with _lock:
        factory = _factories.get(url)
        if factory is None:
            factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
            _factories[url] = factory
    return factory


@contextmanager
def session_scope(factory: sessionmaker) -> Generator[DBSession, None, None]:
    """
    Commit on success, roll back on any error.

    OperationalError (connection refused, locked database, timeout) is
    re-raised as StoreUnavailableError; everything else propagates as is.
    """
    session = factory()
    try:
        yield session
        session.commit()
    except OperationalError as e:
        session.rollback()
        logger.exception("Progress database unavailable")
        raise StoreUnavailableError(f"Progress database unavailable: {e.orig}") from e
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def reset_engine() -> None:
    """Dispose every cached engine. Use between tests for isolation."""
    with _lock:
        for engine in _engines.values():
            engine.dispose()
        _engines.clear()
        _factories.clear()


def init_db(settings: Settings) -> None:
    """Create all tables that do not exist yet."""
    Base.metadata.create_all(bind=get_engine(settings))
