"""Persistence backends for user-added tool servers.

Two concrete backends share the ``KeyValueStorage`` interface:

* Local — one JSON document on disk.  Default, and the fallback when
  Redis is configured but unreachable.
* Redis — JSON strings under a key prefix, for deployments where several
  bridge instances share the same server list.
"""

import logging

from redis.asyncio import Redis

from agentbridge.configs.system import StorageConfig

from .base import KeyValueStorage, StorageError
from .local_backend import LocalFileStorage
from .redis_backend import RedisStorage

logger = logging.getLogger(__name__)


async def build_storage(config: StorageConfig) -> KeyValueStorage:
    """Create the configured backend; fall back to local if Redis is down."""
    if config.backend == "redis":
        client = Redis.from_url(config.redis_uri, decode_responses=True)
        try:
            await client.ping()
        except Exception:
            logger.warning(
                "Redis unavailable at %s -- falling back to local storage.",
                config.redis_uri,
            )
            await client.aclose()
        else:
            logger.info("Using Redis storage (prefix=%s)", config.redis_prefix)
            return RedisStorage(client, config.redis_prefix)

    logger.info("Using local storage at %s", config.path)
    return LocalFileStorage(config.path)


__all__ = [
    "KeyValueStorage",
    "LocalFileStorage",
    "RedisStorage",
    "StorageError",
    "build_storage",
]
