"""Redis storage backend: one JSON string per key."""

from __future__ import annotations

import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from .base import KeyValueStorage, StorageError


class RedisStorage(KeyValueStorage):
    """Stores each value as a JSON string under ``<prefix>:<key>``."""

    def __init__(self, redis: Redis, prefix: str) -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}:{key}"

    async def get(self, key: str) -> Any | None:
        try:
            raw = await self._redis.get(self._key(key))
        except RedisError as e:
            raise StorageError(f"Redis GET {key!r} failed: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            raise StorageError(f"Redis value for {key!r} is not JSON: {e}") from e

    async def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise StorageError(f"Value for {key!r} is not JSON-serializable: {e}") from e
        try:
            await self._redis.set(self._key(key), payload)
        except RedisError as e:
            raise StorageError(f"Redis SET {key!r} failed: {e}") from e

    async def aclose(self) -> None:
        await self._redis.aclose()
