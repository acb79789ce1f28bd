from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from study.catalog import CardCatalog
from study.errors import StoreUnavailableError
from study.storage import JsonlProgressStore, ProgressStore

if TYPE_CHECKING:
    from server.config import Settings

logger = logging.getLogger("sakura.runtime")


class Runtime:
    """
    Process-wide runtime cache for the progress store and card catalog.

    - Progress store: one per process (JSONL keeps its file in memory)
    - Catalog: loaded lazily on first use
    """

    def __init__(self, settings: "Settings"):
        self.settings = settings

        self._store_lock = threading.Lock()
        self._catalog_lock = threading.Lock()

        self._store: Optional[ProgressStore] = None
        self._catalog: Optional[CardCatalog] = None

    # ----------------------------
    # Store
    # ----------------------------
    def get_store(self) -> ProgressStore:
        if self._store is not None:
            return self._store
        with self._store_lock:
            if self._store is None:
                self._store = build_store(self.settings)
        return self._store

    # ----------------------------
    # Catalog
    # ----------------------------
    def get_catalog(self) -> CardCatalog:
        """
        SQL backend reads the catalog table, falling back to the catalog
        file when the table is empty. JSONL backend reads the file only.
        """
        if self._catalog is not None:
            return self._catalog
        with self._catalog_lock:
            if self._catalog is None:
                catalog = None
                if self.settings.progress_backend == "sql":
                    self.get_store()  # creates tables
                    from server.db.progress_store import load_catalog
                    from server.db.session import get_session_factory
                    catalog = load_catalog(get_session_factory(self.settings))
                if not catalog:
                    catalog = CardCatalog.load(self.settings.catalog_path)
                logger.info("Loaded catalog with %d card(s)", len(catalog))
                self._catalog = catalog
        return self._catalog


def build_store(settings: "Settings") -> ProgressStore:
    """Construct the configured ProgressStore."""
    if settings.progress_backend == "jsonl":
        logger.info("Using JSONL progress store at %s", settings.progress_db_path)
        return JsonlProgressStore(settings.progress_db_path)

    from sqlalchemy.exc import OperationalError

    from server.db.progress_store import SqlProgressStore
    from server.db.session import get_session_factory, init_db
    try:
        init_db(settings)
    except OperationalError as e:
        raise StoreUnavailableError(f"Cannot initialize progress database: {e.orig}") from e
    logger.info("Using SQL progress store")
    return SqlProgressStore(get_session_factory(settings))


def runtime_from_settings(settings: "Settings") -> Runtime:
    """Build Runtime from Settings. Used by get_runtime dependency."""
    return Runtime(settings)
