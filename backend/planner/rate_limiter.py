"""
Shared slowapi limiter.

Lives outside main.py so routers can decorate endpoints without importing the app.
Requests are keyed by the ``userId`` query parameter when present, else by client address.
"""

import logging

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from planner.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()

MEMORY_STORAGE = "memory://"


def resolve_storage_uri(redis_url: str) -> str:
    """Redis when configured and importable, in-process memory otherwise."""
    if not redis_url:
        return MEMORY_STORAGE
    try:
        import redis  # noqa: F401
    except ImportError:
        logger.warning("redis package not installed, rate limits fall back to memory storage")
        return MEMORY_STORAGE
    return redis_url


def user_or_address(request: Request) -> str:
    user_id = request.query_params.get("userId")
    if user_id:
        return f"user:{user_id}"
    return get_remote_address(request)


limiter = Limiter(
    key_func=user_or_address,
    default_limits=[settings.rate_limit_default],
    storage_uri=resolve_storage_uri(settings.redis_url),
    strategy="fixed-window",
)
