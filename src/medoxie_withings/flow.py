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
AuthorizedRequestFlow component for orchestrating signed requests, ownership and tokens.
"""

import re
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, TypeVar

import httpx
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from medoxie_withings.async_context import set_current_user
from medoxie_withings.authenticator import HeaderValue, SignedRequestAuthenticator
from medoxie_withings.client import WithingsClient
from medoxie_withings.config import MedoxieWithingsConfig
from medoxie_withings.exceptions import (
    ConfigurationError,
    InvalidRequestError,
    InvalidStateError,
    MedoxieWithingsError,
    ProfileOwnershipError,
    ProviderError,
)
from medoxie_withings.lifecycle import TokenLifecycleManager
from medoxie_withings.models import AuthorizedUser, TokenStatus, TokenStatusKind
from medoxie_withings.oauth import ProviderOAuthClient, WithingsOAuthClient
from medoxie_withings.ownership import LensAccountClient, OwnershipOracle, UserIdResolver
from medoxie_withings.state_store import StateTokenStore
from medoxie_withings.store import KeyValueStore, RedisKeyValueStore
from medoxie_withings.token_store import TokenRepository
from medoxie_withings.utils.logger import anonymize, logger

T = TypeVar("T")

_UNIX_TIMESTAMP_RE = re.compile(r"[0-9]+")

_TOKEN_STATUS_MESSAGES = {
    TokenStatusKind.NOT_CONNECTED: "User is not connected",
    TokenStatusKind.REAUTH_REQUIRED: "Re-auth required",
}


def require_unix_timestamp(name: str, value: str) -> str:
    """
    Checks that a date query parameter is a unix timestamp in seconds.

    Raises:
        InvalidRequestError: If `value` is empty or not all ASCII digits.
    """
    if not _UNIX_TIMESTAMP_RE.fullmatch(value):
        raise InvalidRequestError(f"{name} must be a unix timestamp")
    return value


class AuthorizedRequestFlow:
    """
    The request pipeline an HTTP layer calls:
    SignedRequestAuthenticator -> OwnershipOracle -> TokenLifecycleManager -> Withings.

    Handles resources via async context manager.
    """

    def __init__(
        self,
        config: MedoxieWithingsConfig,
        client: httpx.AsyncClient | None = None,
        store: KeyValueStore | None = None,
        oracle: OwnershipOracle | None = None,
        user_id_resolver: UserIdResolver | None = None,
        oauth: ProviderOAuthClient | None = None,
    ) -> None:
        """
        Initialize the AuthorizedRequestFlow.

        Args:
            config: The configuration object.
            client: External async client (optional). If not provided, one is created and owned.
            store: Key-value store (optional). Defaults to Redis at `config.store_url`.
            oracle: Ownership oracle (optional). Defaults to the Lens API.
            user_id_resolver: Maps a profile to its token key (optional). Defaults to the lowercased profile id.
            oauth: Provider OAuth client (optional). Defaults to Withings.

        Raises:
            ConfigurationError: If no store is given and `config.store_url` is unset.
        """
        self.config = config
        self._internal_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.http_timeout)

        # Instrument the client for distributed tracing
        HTTPXClientInstrumentor().instrument_client(self._client)

        self._internal_store: RedisKeyValueStore | None = None
        if store is None:
            if self.config.store_url is None:
                raise ConfigurationError("A key-value store is required: set WITHINGS_STORE_URL or pass store=")
            self._internal_store = RedisKeyValueStore.from_url(self.config.store_url)
            store = self._internal_store
        self.store = store

        self.authenticator = SignedRequestAuthenticator(
            tolerance_ms=self.config.timestamp_tolerance_ms,
            pii_salt=self.config.pii_salt,
        )
        self.oracle = oracle or LensAccountClient(
            self._client, self.config.lens_api_url, self.config.max_response_bytes
        )
        self.user_id_resolver = user_id_resolver
        self.oauth = oauth or WithingsOAuthClient(self.config, self._client)
        self.withings = WithingsClient(self._client, self.config.api_base_url, self.config.max_response_bytes)
        self.state_tokens = StateTokenStore(self.store, self.config.key_prefix)
        self.lifecycle = TokenLifecycleManager(
            tokens=TokenRepository(self.store, self.config.key_prefix),
            oauth=self.oauth,
            refresh_window_ms=self.config.refresh_window_ms,
            pii_salt=self.config.pii_salt,
        )

    async def __aenter__(self) -> "AuthorizedRequestFlow":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._internal_client:
            await self._client.aclose()
        if self._internal_store is not None:
            await self._internal_store.aclose()

    async def authenticate(self, headers: Mapping[str, HeaderValue], path: str) -> AuthorizedUser:
        """
        Verifies the signed request and the wallet's control of the claimed profile.

        Args:
            headers: The request headers.
            path: The path the request was received on.

        Returns:
            AuthorizedUser: The verified auth and the key its tokens are stored under.

        Raises:
            AuthenticationError: If the signature check fails (see SignedRequestAuthenticator.verify).
            ProfileOwnershipError: If the wallet does not control the profile.
        """
        auth = await self.authenticator.verify(headers, path)
        identity = auth.identity

        if not await self.oracle.owns(identity.address, identity.profile_id):
            logger.warning(f"Wallet {anonymize(identity.address, self.config.pii_salt)} does not own the claimed profile")
            raise ProfileOwnershipError("Wallet does not control the claimed profile")

        user_id = None
        if self.user_id_resolver is not None:
            user_id = await self.user_id_resolver.resolve_user_id(identity.profile_id)
        user = AuthorizedUser(auth=auth, user_id=user_id or identity.profile_id)

        set_current_user(user)
        return user

    async def request(
        self,
        headers: Mapping[str, HeaderValue],
        path: str,
        request_fn: Callable[[str], Awaitable[T]],
    ) -> T | TokenStatus:
        """
        Authenticates the request, then runs `request_fn` with the user's access token.

        A `not_connected` or `reauth_required` outcome carries a fresh `authorize_url`
        so the client can reconnect without starting the OAuth flow separately.

        Returns:
            T | TokenStatus: The provider result, or `not_connected` / `reauth_required`.
        """
        user = await self.authenticate(headers, path)
        result = await self.lifecycle.request_with_retry(user.user_id, request_fn)
        if isinstance(result, TokenStatus) and not result.is_ok:
            url = await self.authorization_url(user.user_id)
            return result.model_copy(update={"authorize_url": url})
        return result

    async def fetch_sleep_summary(
        self, headers: Mapping[str, HeaderValue], path: str, startdate: str, enddate: str
    ) -> Any:
        require_unix_timestamp("startdate", startdate)
        require_unix_timestamp("enddate", enddate)
        return await self.request(
            headers, path, lambda token: self.withings.get_sleep_summary(token, startdate, enddate)
        )

    async def fetch_measures(
        self, headers: Mapping[str, HeaderValue], path: str, startdate: str, enddate: str
    ) -> Any:
        require_unix_timestamp("startdate", startdate)
        require_unix_timestamp("enddate", enddate)
        return await self.request(headers, path, lambda token: self.withings.get_measures(token, startdate, enddate))

    async def fetch_activity(
        self, headers: Mapping[str, HeaderValue], path: str, startdate: str, enddate: str
    ) -> Any:
        require_unix_timestamp("startdate", startdate)
        require_unix_timestamp("enddate", enddate)
        return await self.request(headers, path, lambda token: self.withings.get_activity(token, startdate, enddate))

    async def start_authorization(self, headers: Mapping[str, HeaderValue], path: str) -> str:
        """
        Starts the Withings OAuth flow for the authenticated user.

        Returns:
            str: The authorize URL to redirect the browser to.
        """
        user = await self.authenticate(headers, path)
        return await self.authorization_url(user.user_id)

    async def authorization_url(self, user_id: str) -> str:
        """
        Issues a state token bound to `user_id` and returns the matching authorize URL.
        """
        state = await self.state_tokens.issue(user_id, self.config.state_ttl_seconds)
        return self.oauth.build_authorize_url(state)

    async def complete_authorization(self, state: str, code: str) -> str:
        """
        Handles the OAuth redirect: consumes the state token and stores the exchanged tokens.

        Args:
            state: The `state` query parameter.
            code: The `code` query parameter.

        Returns:
            str: The user id the tokens were stored for.

        Raises:
            InvalidStateError: If the state is unknown, expired or already used.
            ProviderError: If the code exchange fails.
        """
        if not code:
            raise InvalidStateError("state and code are required")

        user_id = await self.state_tokens.consume(state)
        if user_id is None:
            raise InvalidStateError("Invalid or expired state")

        await self.lifecycle.connect(user_id, code)
        return user_id

    async def refresh_tokens(self, headers: Mapping[str, HeaderValue], path: str) -> TokenStatus:
        """
        Forces a token refresh for the authenticated user.
        """
        user = await self.authenticate(headers, path)
        return await self.lifecycle.force_refresh(user.user_id)


def describe_failure(outcome: BaseException | TokenStatus) -> tuple[int, dict[str, str]]:
    """
    Maps a failed outcome to an HTTP status and an `{error, message}` body.

    Args:
        outcome: A raised exception, or a non-`ok` TokenStatus returned by the flow.

    Returns:
        tuple[int, dict[str, str]]: The status code and the JSON body.
    """
    if isinstance(outcome, TokenStatus):
        if outcome.is_ok:
            raise ValueError("An ok TokenStatus is not a failure")
        if outcome.authorize_url:
            return 401, {
                "error": "oauth_required",
                "message": "Please connect your Withings account",
                "url": outcome.authorize_url,
            }
        return 401, {"error": outcome.kind.value, "message": _TOKEN_STATUS_MESSAGES[outcome.kind]}

    if isinstance(outcome, ProviderError):
        message = str(outcome) or "Withings API error"
        if outcome.status:
            message = f"{message} (status {outcome.status})"
        return outcome.status_code, {"error": outcome.error_code, "message": message}

    if isinstance(outcome, MedoxieWithingsError):
        return outcome.status_code, {"error": outcome.error_code, "message": str(outcome)}

    return 500, {"error": "server_error", "message": "Internal server error"}
