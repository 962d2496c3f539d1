"""Redis client for session lookup

Sessions are issued by the host application's auth layer; this service only
resolves a session id to the authenticated user id.
"""
from typing import Optional

import redis

from mailrelay.core.config import settings

# Lazy initialization - no connection at import time
_client = None

# Session TTL (30 days)
SESSION_TTL = 30 * 24 * 60 * 60


def get_redis_client():
    """Get or create Redis client (lazy initialization)

    This prevents connection attempts during import, allowing mocks to be applied first.
    """
    global _client
    if _client is None:
        _client = redis.from_url(settings.REDIS_URL, decode_responses=True)
    return _client


def set_session(session_id: str, user_id: str) -> None:
    """Store session in Redis"""
    get_redis_client().setex(f"session:{session_id}", SESSION_TTL, user_id)


def get_session(session_id: str) -> Optional[str]:
    """Get user_id from session"""
    user_id = get_redis_client().get(f"session:{session_id}")
    return str(user_id) if user_id else None
