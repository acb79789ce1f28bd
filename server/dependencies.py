"""FastAPI dependency factories."""

import sys
from functools import lru_cache
from pathlib import Path

_project_root = str(Path(__file__).resolve().parent.parent)
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fastapi import Depends, HTTPException

from server.config import Settings
from server.runtime import Runtime, runtime_from_settings
from study.catalog import CardCatalog
from study.errors import StoreUnavailableError
from study.recommend import SessionConfig
from study.scheduler import SchedulerConfig
from study.storage import ProgressStore

# Process-wide Runtime cache (keyed by settings identity for override support)
_runtime: Runtime | None = None
_runtime_settings_id: object | None = None


@lru_cache()
def get_settings() -> Settings:
    """Singleton Settings -- override via app.dependency_overrides in tests."""
    return Settings()


def get_runtime(settings: Settings = Depends(get_settings)) -> Runtime:
    """Process-wide Runtime cache for the progress store and catalog."""
    global _runtime, _runtime_settings_id
    # Recreate if settings were overridden (e.g. in tests)
    if _runtime is None or _runtime_settings_id is not settings:
        _runtime = runtime_from_settings(settings)
        _runtime_settings_id = settings
    return _runtime


def get_progress_store(runtime: Runtime = Depends(get_runtime)) -> ProgressStore:
    """Cached ProgressStore from Runtime (process-wide)."""
    try:
        return runtime.get_store()
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


def get_catalog(runtime: Runtime = Depends(get_runtime)) -> CardCatalog:
    """Cached CardCatalog from Runtime (process-wide)."""
    try:
        return runtime.get_catalog()
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


def get_scheduler_config(settings: Settings = Depends(get_settings)) -> SchedulerConfig:
    return settings.scheduler_config()


def get_session_config(settings: Settings = Depends(get_settings)) -> SessionConfig:
    return settings.session_config()
