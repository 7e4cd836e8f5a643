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
StateTokenStore component for single-use OAuth state tokens.
"""

import math
import secrets

from medoxie_withings.store import KeyValueStore
from medoxie_withings.utils.logger import logger

DEFAULT_STATE_TTL_SECONDS = 10 * 60


class StateTokenStore:
    """
    Issues and consumes one-time nonces that bind an OAuth redirect back to the
    user that started the flow.

    Attributes:
        store (KeyValueStore): The backing store.
        key_prefix (str): Namespace prepended to `state:` keys.
    """

    def __init__(self, store: KeyValueStore, key_prefix: str = "") -> None:
        self.store = store
        self.key_prefix = key_prefix

    def _key(self, state: str) -> str:
        return f"{self.key_prefix}state:{state}"

    async def issue(self, user_id: str, ttl_seconds: float = DEFAULT_STATE_TTL_SECONDS) -> str:
        """
        Generates a state token bound to `user_id`.

        Args:
            user_id: The store key of the user starting the OAuth flow.
            ttl_seconds: Lifetime of the token. Floored, and at least 1 second.

        Returns:
            str: The opaque state value to send in the authorize URL.
        """
        state = secrets.token_urlsafe(32)
        ttl = max(1, math.floor(ttl_seconds))
        await self.store.set(self._key(state), user_id, ttl_seconds=ttl)
        logger.debug(f"Issued OAuth state token (ttl={ttl}s)")
        return state

    async def consume(self, state: str) -> str | None:
        """
        Atomically reads and deletes a state token.

        Args:
            state: The state value returned by the provider redirect.

        Returns:
            str | None: The bound user id, or None if unknown, expired or already consumed.
        """
        if not state:
            return None
        user_id = await self.store.pop(self._key(state))
        if not user_id:
            logger.warning("OAuth state token is unknown, expired or already used")
            return None
        return user_id
