# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/medoxie_withings

"""
Key-value store backends for tokens and OAuth state.
"""

import time
from collections.abc import Callable
from typing import Protocol, Self

import redis.asyncio as aioredis
from pydantic import SecretStr


class KeyValueStore(Protocol):
    """Protocol for the namespaced key-value store backing tokens and state."""

    async def get(self, key: str) -> str | None:
        """Returns the value, or None if absent or expired."""
        ...

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        """Stores the value, replacing any previous one. Expires after `ttl_seconds` if given."""
        ...

    async def delete(self, key: str) -> None: ...

    async def pop(self, key: str) -> str | None:
        """Atomically returns and deletes the value."""
        ...


class MemoryKeyValueStore:
    """
    In-memory implementation of KeyValueStore.
    Uses a dictionary with lazy expiry. Not suitable for distributed systems.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._data: dict[str, tuple[str, float | None]] = {}
        self.clock = clock

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        return self._live(key)

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        expires_at = self.clock() + ttl_seconds if ttl_seconds is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def pop(self, key: str) -> str | None:
        # No await between read and delete, so this is atomic on the event loop
        value = self._live(key)
        self._data.pop(key, None)
        return value


class RedisKeyValueStore:
    """
    Redis implementation of KeyValueStore.

    The client is injected so its lifetime is controlled by the owner
    (see `AuthorizedRequestFlow`), never by a module-level singleton.
    """

    def __init__(self, client: aioredis.Redis) -> None:
        self.client = client

    @classmethod
    def from_url(cls, url: SecretStr, timeout: float = 2.0) -> Self:
        """
        Creates a store with its own connection pool.

        Args:
            url: The Redis URL (may contain credentials).
            timeout: Socket connect and read timeout in seconds.
        """
        client = aioredis.from_url(
            url.get_secret_value(),
            decode_responses=True,
            socket_connect_timeout=timeout,
            socket_timeout=timeout,
        )
        return cls(client)

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)  # type: ignore[no-any-return]

    async def set(self, key: str, value: str, ttl_seconds: int | None = None) -> None:
        await self.client.set(key, value, ex=ttl_seconds)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def pop(self, key: str) -> str | None:
        return await self.client.getdel(key)  # type: ignore[no-any-return]

    async def aclose(self) -> None:
        await self.client.aclose()
