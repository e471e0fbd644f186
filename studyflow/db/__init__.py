"""Database layer: engine/session helpers, ORM models and the store facade."""

from .database import async_session_scope, get_async_session, get_engine, get_session_factory, init_db
from .store import ChunkMatch, LearningStore

__all__ = [
    "ChunkMatch",
    "LearningStore",
    "async_session_scope",
    "get_async_session",
    "get_engine",
    "get_session_factory",
    "init_db",
]
