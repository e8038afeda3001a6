"""Redis client configuration for payhook."""

import os
from typing import Optional
from urllib.parse import urlparse

import redis

from payhook_api.config.env import get_redis_url


class RedisClient:
    """Singleton Redis client.

    Only built when REDIS_URL is configured; the event ledger is optional
    and the service runs without Redis.
    """

    _instance: Optional[redis.Redis] = None

    @classmethod
    def get_client(cls) -> Optional[redis.Redis]:
        """Get Redis client instance, or None when REDIS_URL is unset.

        - REDIS_URL: e.g. redis://host:6379/0 or rediss://...
        - REDIS_PASSWORD: applied only if the URL has no password
        """
        if cls._instance is None:
            redis_url = get_redis_url()
            if redis_url is None:
                return None

            parsed = urlparse(redis_url)
            kwargs = {
                "decode_responses": True,
                "socket_connect_timeout": 2,
                "socket_timeout": 2,
                "health_check_interval": 30,
            }

            redis_password = os.getenv("REDIS_PASSWORD")
            if not parsed.password and redis_password:
                kwargs["password"] = redis_password

            cls._instance = redis.from_url(redis_url, **kwargs)

        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset Redis client (for testing)."""
        if cls._instance is not None:
            cls._instance.close()
            cls._instance = None
