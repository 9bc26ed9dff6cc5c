"""Helper function to create Redis clients with SSL support for hosted providers."""

from __future__ import annotations

import ssl
from functools import lru_cache
from typing import Any

from redis import Redis

from massive_action_api.core.config import get_settings


def create_redis_client(url: str, **kwargs: Any) -> Redis:
    """Create a Redis client, relaxing certificate checks for TLS URLs.

    Args:
        url: Redis connection URL (redis:// or rediss://)
        **kwargs: Additional arguments (decode_responses, socket_connect_timeout, etc.)
    """
    if ".upstash.io" in url and url.startswith("redis://"):
        url = url.replace("redis://", "rediss://", 1)

    client = Redis.from_url(url, **kwargs)

    if url.startswith("rediss://"):
        pool_kwargs = getattr(client.connection_pool, "connection_kwargs", None)
        if pool_kwargs is not None:
            pool_kwargs["ssl_cert_reqs"] = ssl.CERT_NONE

    return client


@lru_cache
def get_redis_client() -> Redis | None:
    """Shared client for the configured ``REDIS_URL``; ``None`` when unset."""
    settings = get_settings()
    if not settings.redis_url:
        return None
    return create_redis_client(
        settings.redis_url, decode_responses=True, socket_connect_timeout=2
    )
