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
TokenRepository component for persisting Withings token bundles.
"""

from pydantic import ValidationError

from medoxie_withings.exceptions import StoreDecodeError
from medoxie_withings.models import TokenBundle
from medoxie_withings.store import KeyValueStore


class TokenRepository:
    """
    Reads and writes whole TokenBundles under `tokens:<user_id>`.
    Bundles never expire from the store; staleness is judged from `expires_at`.
    """

    def __init__(self, store: KeyValueStore, key_prefix: str = "") -> None:
        self.store = store
        self.key_prefix = key_prefix

    def _key(self, user_id: str) -> str:
        return f"{self.key_prefix}tokens:{user_id}"

    async def get(self, user_id: str) -> TokenBundle | None:
        """
        Returns the stored bundle for `user_id`, or None if the user never connected.

        Raises:
            StoreDecodeError: If the stored value is not a valid bundle.
        """
        raw = await self.store.get(self._key(user_id))
        if raw is None:
            return None
        try:
            return TokenBundle.model_validate_json(raw)
        except ValidationError as e:
            raise StoreDecodeError(f"Stored token bundle is invalid: {e.error_count()} error(s)") from e

    async def set(self, user_id: str, tokens: TokenBundle) -> None:
        """Replaces the stored bundle in a single write."""
        await self.store.set(self._key(user_id), tokens.model_dump_json())
