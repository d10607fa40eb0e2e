"""
Persistence Module - Reference snapshot store (SQLAlchemy) with optimistic concurrency.
"""

from logos.persistence.database import (
    create_database_engine,
    create_session_factory,
    init_db,
    session_scope,
)
from logos.persistence.models import (
    AbilityProfileRow,
    Base,
    CollocationSnapshotRow,
    MemoryStateRow,
)
from logos.persistence.repository import SnapshotRepository

__all__ = [
    "AbilityProfileRow",
    "Base",
    "CollocationSnapshotRow",
    "MemoryStateRow",
    "SnapshotRepository",
    "create_database_engine",
    "create_session_factory",
    "init_db",
    "session_scope",
]
