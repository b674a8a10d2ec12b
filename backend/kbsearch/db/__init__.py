"""Database utilities and session management."""

from kbsearch.db.base import Base, BaseModel, String255, String500, UUIDString
from kbsearch.db.session import (
    AsyncSessionLocal,
    check_db_health,
    close_db,
    engine,
    init_db,
)

__all__ = [
    # Base classes
    "Base",
    "BaseModel",
    # String types
    "UUIDString",
    "String255",
    "String500",
    # Session management
    "engine",
    "AsyncSessionLocal",
    "init_db",
    "close_db",
    "check_db_health",
]
