"""Database layer: SQLAlchemy models, sessions and the SQL progress store."""

from server.db.models import Base, CatalogCardRecord, MemoryStateRecord, ReviewLogRecord
from server.db.session import init_db, session_scope

__all__ = [
    "Base",
    "CatalogCardRecord",
    "MemoryStateRecord",
    "ReviewLogRecord",
    "init_db",
    "session_scope",
]
