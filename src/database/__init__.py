from src.database.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin
from src.database.engine import async_session, engine, sync_engine

__all__ = [
    "Base",
    "JSONType",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "async_session",
    "engine",
    "sync_engine",
]
