# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/medoxie_withings

from unittest.mock import AsyncMock, patch

import pytest
from pydantic import SecretStr

from medoxie_withings.store import MemoryKeyValueStore, RedisKeyValueStore


@pytest.mark.asyncio
async def test_memory_store_get_set_delete(memory_store: MemoryKeyValueStore) -> None:
    assert await memory_store.get("k") is None
    await memory_store.set("k", "v")
    assert await memory_store.get("k") == "v"
    await memory_store.set("k", "v2")
    assert await memory_store.get("k") == "v2"
    await memory_store.delete("k")
    assert await memory_store.get("k") is None
    # Deleting a missing key is a no-op
    await memory_store.delete("k")


@pytest.mark.asyncio
async def test_memory_store_ttl() -> None:
    now = [1000.0]
    store = MemoryKeyValueStore(clock=lambda: now[0])
    await store.set("k", "v", ttl_seconds=10)
    await store.set("forever", "v")

    now[0] = 1009.0
    assert await store.get("k") == "v"

    now[0] = 1010.0
    assert await store.get("k") is None
    assert await store.get("forever") == "v"


@pytest.mark.asyncio
async def test_memory_store_pop(memory_store: MemoryKeyValueStore) -> None:
    await memory_store.set("k", "v", ttl_seconds=60)
    assert await memory_store.pop("k") == "v"
    assert await memory_store.pop("k") is None
    assert await memory_store.get("k") is None


@pytest.fixture
def redis_client() -> AsyncMock:
    return AsyncMock()


@pytest.mark.asyncio
async def test_redis_store_delegates(redis_client: AsyncMock) -> None:
    store = RedisKeyValueStore(redis_client)
    redis_client.get.return_value = "v"
    redis_client.getdel.return_value = "u1"

    assert await store.get("k") == "v"
    await store.set("k", "v", ttl_seconds=600)
    await store.set("t", "bundle")
    await store.delete("k")
    assert await store.pop("state:x") == "u1"
    await store.aclose()

    redis_client.get.assert_awaited_once_with("k")
    redis_client.set.assert_any_await("k", "v", ex=600)
    redis_client.set.assert_any_await("t", "bundle", ex=None)
    redis_client.delete.assert_awaited_once_with("k")
    redis_client.getdel.assert_awaited_once_with("state:x")
    redis_client.aclose.assert_awaited_once()


def test_redis_store_from_url() -> None:
    with patch("medoxie_withings.store.aioredis.from_url") as from_url:
        store = RedisKeyValueStore.from_url(SecretStr("redis://:pw@localhost:6379/0"), timeout=3.0)

    from_url.assert_called_once_with(
        "redis://:pw@localhost:6379/0",
        decode_responses=True,
        socket_connect_timeout=3.0,
        socket_timeout=3.0,
    )
    assert store.client is from_url.return_value
