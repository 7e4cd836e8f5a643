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
TokenLifecycleManager component for keeping Withings tokens usable.
"""

from collections.abc import Awaitable, Callable
from typing import TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from medoxie_withings.exceptions import ProviderError
from medoxie_withings.models import TokenBundle, TokenStatus
from medoxie_withings.oauth import ProviderOAuthClient
from medoxie_withings.token_store import TokenRepository
from medoxie_withings.utils.clock import now_ms
from medoxie_withings.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

T = TypeVar("T")

REFRESH_WINDOW_MS = 30_000


class TokenLifecycleManager:
    """
    Maintains the Withings TokenBundle of each user and wraps provider calls.

    At most one time-based refresh and one error-based refresh happen per call;
    a failed refresh surfaces as `reauth_required` instead of being retried.

    Attributes:
        tokens (TokenRepository): Where bundles are persisted.
        oauth (ProviderOAuthClient): Used to exchange codes and refresh tokens.
        refresh_window_ms (int): Tokens expiring within this window are refreshed first.
    """

    def __init__(
        self,
        tokens: TokenRepository,
        oauth: ProviderOAuthClient,
        refresh_window_ms: int = REFRESH_WINDOW_MS,
        pii_salt: SecretStr | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.tokens = tokens
        self.oauth = oauth
        self.refresh_window_ms = refresh_window_ms
        self.pii_salt = pii_salt or SecretStr("medoxie-unsafe-default-salt")
        self.clock = clock

    def _user_hash(self, user_id: str) -> str:
        return anonymize(user_id, self.pii_salt)

    async def _refresh(self, user_id: str, refresh_token: str) -> TokenBundle:
        refreshed = await self.oauth.refresh(refresh_token)
        await self.tokens.set(user_id, refreshed)
        logger.info(f"Refreshed Withings tokens for user {self._user_hash(user_id)}")
        return refreshed

    async def ensure_tokens(self, user_id: str) -> TokenStatus:
        """
        Returns a usable TokenBundle for `user_id`, refreshing it if it is about to expire.

        Args:
            user_id: The store key of the user.

        Returns:
            TokenStatus: `ok` with the bundle, `not_connected` if the user never
            connected, or `reauth_required` if the refresh failed. A failed refresh
            leaves the stored bundle untouched.
        """
        tokens = await self.tokens.get(user_id)
        if tokens is None:
            return TokenStatus.not_connected()

        if tokens.is_fresh(self.clock(), self.refresh_window_ms):
            return TokenStatus.ok(tokens)

        try:
            refreshed = await self._refresh(user_id, tokens.refresh_token)
        except Exception as e:
            logger.warning(f"Proactive token refresh failed for user {self._user_hash(user_id)}: {e}")
            return TokenStatus.reauth_required()
        return TokenStatus.ok(refreshed)

    async def request_with_retry(
        self, user_id: str, request_fn: Callable[[str], Awaitable[T]]
    ) -> T | TokenStatus:
        """
        Calls `request_fn` with a valid access token, retrying once after a refresh
        if Withings rejects the token.

        Emits an OpenTelemetry span `withings_request`.

        Args:
            user_id: The store key of the user.
            request_fn: Performs the provider call given an access token.

        Returns:
            T | TokenStatus: The result of `request_fn`, or a non-`ok` TokenStatus
            (`not_connected`, `reauth_required`).

        Raises:
            Exception: Whatever `request_fn` raised on its first call, unless it was
            an invalid-token ProviderError.
        """
        with tracer.start_as_current_span("withings_request") as span:
            span.set_attribute("enduser.id", self._user_hash(user_id))

            status = await self.ensure_tokens(user_id)
            if not status.is_ok or status.tokens is None:
                span.set_attribute("withings.token_status", status.kind.value)
                return status

            try:
                return await request_fn(status.tokens.access_token)
            except ProviderError as e:
                if not e.is_invalid_token:
                    span.record_exception(e)
                    span.set_status(Status(StatusCode.ERROR, str(e)))
                    raise
                logger.info(f"Withings rejected the access token for user {self._user_hash(user_id)}, refreshing")
                span.add_event("refreshing_tokens")

            try:
                # Another request may have rotated the bundle since it was read
                current = await self.tokens.get(user_id)
                if current is None:
                    span.set_attribute("withings.token_status", "not_connected")
                    return TokenStatus.not_connected()
                refreshed = await self._refresh(user_id, current.refresh_token)
                return await request_fn(refreshed.access_token)
            except Exception as e:
                logger.warning(f"Retry after token refresh failed for user {self._user_hash(user_id)}: {e}")
                span.record_exception(e)
                span.set_attribute("withings.token_status", "reauth_required")
                return TokenStatus.reauth_required()

    async def connect(self, user_id: str, code: str) -> TokenBundle:
        """
        Exchanges an OAuth authorization code and stores the resulting bundle.

        Raises:
            ProviderError: If the code exchange fails.
        """
        tokens = await self.oauth.exchange_code(code)
        await self.tokens.set(user_id, tokens)
        logger.info(f"Connected Withings account for user {self._user_hash(user_id)}")
        return tokens

    async def force_refresh(self, user_id: str) -> TokenStatus:
        """
        Refreshes the stored bundle regardless of its expiry.

        Returns:
            TokenStatus: `ok` with the new bundle, `not_connected`, or `reauth_required`.
        """
        tokens = await self.tokens.get(user_id)
        if tokens is None:
            return TokenStatus.not_connected()

        try:
            refreshed = await self._refresh(user_id, tokens.refresh_token)
        except Exception as e:
            logger.warning(f"Token refresh failed for user {self._user_hash(user_id)}: {e}")
            return TokenStatus.reauth_required()
        return TokenStatus.ok(refreshed)
