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
Lens profile ownership and user-id resolution.
"""

import re
from typing import Protocol

import httpx
from pydantic import ValidationError

from medoxie_withings.exceptions import MedoxieWithingsError
from medoxie_withings.models_internal import LensAccount
from medoxie_withings.transport import DEFAULT_MAX_BYTES, fetch_json
from medoxie_withings.utils.logger import logger

_EVM_ADDRESS_RE = re.compile(r"0x[0-9a-fA-F]{40}")

ACCOUNT_QUERY = """
query Account($request: AccountRequest!) {
  account(request: $request) {
    address
    metadata {
      attributes {
        key
        value
      }
    }
  }
}
""".strip()

USER_ID_ATTRIBUTE_KEYS = ("WithingsEmail", "Withings", "Email", "email")


class OwnershipOracle(Protocol):
    """Protocol for deciding whether a wallet controls a profile."""

    async def owns(self, address: str, profile_id: str) -> bool:
        """Returns False, never raises, when the profile does not exist."""
        ...


class UserIdResolver(Protocol):
    """Protocol for mapping a profile to the key its tokens are stored under."""

    async def resolve_user_id(self, profile_id: str) -> str | None: ...


class LensAccountClient:
    """
    Queries the Lens GraphQL API for accounts.

    Implements both `OwnershipOracle` and `UserIdResolver`.

    Attributes:
        api_url (str): The Lens GraphQL endpoint.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = "https://api.lens.xyz/graphql",
        max_response_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self.client = client
        self.api_url = api_url
        self.max_response_bytes = max_response_bytes

    async def fetch_account(self, profile_id: str) -> LensAccount | None:
        """
        Fetches a Lens account by its address.

        Args:
            profile_id: The Lens account address.

        Returns:
            LensAccount | None: The account, or None if it does not exist.

        Raises:
            MedoxieWithingsError: If the response is oversized, not JSON, or not a valid account.
            httpx.HTTPError: For transport failures.
        """
        if not _EVM_ADDRESS_RE.fullmatch(profile_id):
            logger.warning("Lens profile id is not an EVM address")
            return None

        status_code, payload = await fetch_json(
            self.client,
            self.api_url,
            method="POST",
            max_bytes=self.max_response_bytes,
            json={"query": ACCOUNT_QUERY, "variables": {"request": {"address": profile_id}}},
        )
        if status_code >= 400 or not isinstance(payload, dict):
            raise MedoxieWithingsError(f"Lens API returned HTTP {status_code}")
        if payload.get("errors"):
            raise MedoxieWithingsError(f"Lens API returned {len(payload['errors'])} error(s)")

        data = payload.get("data")
        raw = data.get("account") if isinstance(data, dict) else None
        if raw is None:
            return None

        try:
            return LensAccount.model_validate(raw)
        except ValidationError as e:
            raise MedoxieWithingsError(f"Invalid Lens account: {e.error_count()} error(s)") from e

    async def owns(self, address: str, profile_id: str) -> bool:
        """
        Checks whether `address` is the address of the Lens account `profile_id`.

        Any lookup failure counts as "not owned".
        """
        try:
            account = await self.fetch_account(profile_id)
        except (MedoxieWithingsError, httpx.HTTPError) as e:
            logger.error(f"Lens ownership lookup failed: {e}")
            return False

        if account is None:
            logger.warning("Lens account not found")
            return False

        return account.address.lower() == address.lower()

    async def resolve_user_id(self, profile_id: str) -> str | None:
        """
        Returns the Withings account hint stored in the profile's metadata attributes.
        """
        try:
            account = await self.fetch_account(profile_id)
        except (MedoxieWithingsError, httpx.HTTPError) as e:
            logger.error(f"Lens user id lookup failed: {e}")
            return None

        if account is None or account.metadata is None:
            return None

        for attribute in account.metadata.attributes:
            if attribute.key in USER_ID_ATTRIBUTE_KEYS and attribute.value:
                return attribute.value
        return None
