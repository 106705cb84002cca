"""Database package for Command Center."""

from .base import Base, create_db_engine, create_session_factory, init_database
from .repository import (
    InMemoryRepository,
    Repository,
    SqlRepository,
    TrackerStore,
    create_store,
)

__all__ = [
    "Base",
    "InMemoryRepository",
    "Repository",
    "SqlRepository",
    "TrackerStore",
    "create_db_engine",
    "create_session_factory",
    "create_store",
    "init_database",
]
