"""Utility modules."""

from prizepool.utils.db import get_db, get_db_session, get_engine
from prizepool.utils.redis_client import get_redis

__all__ = [
    "get_db",
    "get_db_session",
    "get_engine",
    "get_redis",
]
