"""Tests for the key/value storage backends."""

import json
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from agentbridge.configs.system import StorageConfig
from agentbridge.infra.storage import (
    LocalFileStorage,
    RedisStorage,
    StorageError,
    build_storage,
)

# =========================================================================
# Local file backend
# =========================================================================


class TestLocalFileStorage:
    @pytest.mark.asyncio
    async def test_missing_file_reads_none(self, tmp_path):
        storage = LocalFileStorage(tmp_path / "nested" / "storage.json")
        assert await storage.get("mcp-servers") is None

    @pytest.mark.asyncio
    async def test_set_creates_parents_and_keeps_other_keys(self, tmp_path):
        path = tmp_path / "nested" / "storage.json"
        storage = LocalFileStorage(path)

        await storage.set("a", [1, 2])
        await storage.set("b", {"x": "y"})

        assert json.loads(path.read_text(encoding="utf-8")) == {
            "a": [1, 2],
            "b": {"x": "y"},
        }
        assert await storage.get("a") == [1, 2]
        assert [p.name for p in path.parent.iterdir()] == ["storage.json"]

    @pytest.mark.asyncio
    async def test_corrupt_file_raises(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(StorageError):
            await LocalFileStorage(path).get("a")

    @pytest.mark.asyncio
    async def test_non_object_document_raises(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(StorageError):
            await LocalFileStorage(path).get("a")

    @pytest.mark.asyncio
    async def test_unserializable_value_raises(self, tmp_path):
        storage = LocalFileStorage(tmp_path / "storage.json")
        with pytest.raises(StorageError):
            await storage.set("a", object())
        assert list(tmp_path.iterdir()) == []


# =========================================================================
# Redis backend
# =========================================================================


class TestRedisStorage:
    @pytest.mark.asyncio
    async def test_values_are_prefixed_json(self):
        redis = AsyncMock()
        storage = RedisStorage(redis, "agentbridge")

        await storage.set("mcp-servers", [{"name": "fs"}])

        redis.set.assert_awaited_once_with(
            "agentbridge:mcp-servers", json.dumps([{"name": "fs"}])
        )

    @pytest.mark.asyncio
    async def test_get_decodes(self):
        redis = AsyncMock()
        redis.get.return_value = '[{"name": "fs"}]'
        storage = RedisStorage(redis, "p")

        assert await storage.get("k") == [{"name": "fs"}]
        redis.get.assert_awaited_once_with("p:k")

    @pytest.mark.asyncio
    async def test_absent_key(self):
        redis = AsyncMock()
        redis.get.return_value = None
        assert await RedisStorage(redis, "p").get("k") is None

    @pytest.mark.asyncio
    async def test_redis_errors_become_storage_errors(self):
        redis = AsyncMock()
        redis.get.side_effect = RedisConnectionError("down")
        redis.set.side_effect = RedisConnectionError("down")
        storage = RedisStorage(redis, "p")

        with pytest.raises(StorageError):
            await storage.get("k")
        with pytest.raises(StorageError):
            await storage.set("k", [])

    @pytest.mark.asyncio
    async def test_aclose_closes_client(self):
        redis = AsyncMock()
        await RedisStorage(redis, "p").aclose()
        redis.aclose.assert_awaited_once()


# =========================================================================
# Backend selection
# =========================================================================


class TestBuildStorage:
    @pytest.mark.asyncio
    async def test_local_by_default(self, tmp_path):
        storage = await build_storage(StorageConfig(path=tmp_path / "s.json"))
        assert isinstance(storage, LocalFileStorage)
        assert storage.path == tmp_path / "s.json"

    @pytest.mark.asyncio
    async def test_unreachable_redis_falls_back_to_local(self, tmp_path):
        config = StorageConfig(
            backend="redis",
            redis_uri="redis://127.0.0.1:1/0",
            path=tmp_path / "s.json",
        )
        storage = await build_storage(config)
        assert isinstance(storage, LocalFileStorage)
