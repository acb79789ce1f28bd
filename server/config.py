"""Configuration for the Sakura progress API server."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from study.recommend import SessionConfig
from study.scheduler import SchedulerConfig


def _env_int(name: str) -> Optional[int]:
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _env_float(name: str) -> Optional[float]:
    value = os.environ.get(name)
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


@dataclass
class Settings:
    """
    Storage locations and engine tuning the server needs.

    Defaults resolve relative to the project root.
    Every field is overridable at construction for testing.
    """
    data_root: Optional[Path] = None
    progress_backend: Optional[str] = None  # "sql" | "jsonl"
    database_url: Optional[str] = None
    db_connect_timeout_s: int = 5
    progress_db_path: Optional[Path] = None
    catalog_path: Optional[Path] = None

    # SM-2 tuning
    max_ease: float = 3.0
    max_write_attempts: int = 3

    # Session sizing
    min_session_size: int = 5
    max_session_size: int = 30
    recent_sessions: int = 5
    max_new_cards_per_session: Optional[int] = None

    def __post_init__(self):
        project_root = Path(__file__).resolve().parent.parent

        if self.data_root is None:
            env_root = os.environ.get("DATA_ROOT")
            self.data_root = Path(env_root) if env_root else project_root / "data"
        self.data_root = Path(self.data_root)

        if self.progress_backend is None:
            self.progress_backend = os.environ.get("PROGRESS_BACKEND", "sql")
        self.progress_backend = self.progress_backend.lower()
        if self.progress_backend not in ("sql", "jsonl"):
            raise ValueError(f"Unknown progress backend: {self.progress_backend}")

        if self.database_url is None:
            self.database_url = os.environ.get("DATABASE_URL", "sqlite:///./sakura.db")

        if self.progress_db_path is None:
            env_path = os.environ.get("PROGRESS_DB_PATH")
            self.progress_db_path = Path(env_path) if env_path else self.data_root / "progress.jsonl"
        self.progress_db_path = Path(self.progress_db_path)

        if self.catalog_path is None:
            env_catalog = os.environ.get("CATALOG_PATH")
            self.catalog_path = Path(env_catalog) if env_catalog else self.data_root / "catalog.jsonl"
        self.catalog_path = Path(self.catalog_path)

        # Numeric env overrides; malformed values are ignored
        if (v := _env_int("DB_CONNECT_TIMEOUT_S")) is not None:
            self.db_connect_timeout_s = v
        if (v := _env_float("SRS_MAX_EASE")) is not None:
            self.max_ease = v
        if (v := _env_int("SRS_MAX_WRITE_ATTEMPTS")) is not None:
            self.max_write_attempts = v
        if (v := _env_int("SRS_MIN_SESSION")) is not None:
            self.min_session_size = v
        if (v := _env_int("SRS_MAX_SESSION")) is not None:
            self.max_session_size = v
        if (v := _env_int("SRS_MAX_NEW_CARDS")) is not None:
            self.max_new_cards_per_session = v

    def scheduler_config(self) -> SchedulerConfig:
        return SchedulerConfig(max_ease=self.max_ease)

    def session_config(self) -> SessionConfig:
        return SessionConfig(
            min_session_size=self.min_session_size,
            max_session_size=self.max_session_size,
            recent_sessions=self.recent_sessions,
            max_new_cards_per_session=self.max_new_cards_per_session,
        )
