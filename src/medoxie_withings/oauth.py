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
WithingsOAuthClient component for the Withings OAuth 2.0 authorization code grant.
"""

from collections.abc import Callable
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from medoxie_withings.config import MedoxieWithingsConfig
from medoxie_withings.exceptions import ProviderError, TokenDecodeError
from medoxie_withings.models import TokenBundle
from medoxie_withings.models_internal import RawTokenBody, WithingsEnvelope
from medoxie_withings.transport import fetch_json
from medoxie_withings.utils.clock import now_ms
from medoxie_withings.utils.logger import logger


class ProviderOAuthClient(Protocol):
    """Protocol for the provider side of the OAuth flow."""

    def build_authorize_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> TokenBundle: ...

    async def refresh(self, refresh_token: str) -> TokenBundle: ...


class WithingsOAuthClient:
    """
    Builds authorize URLs and exchanges codes or refresh tokens for TokenBundles.

    Withings does not follow RFC 6749 on the token endpoint (an `action` parameter
    and a `{status, body}` envelope), so requests are made directly with httpx and
    decoded with strict Pydantic models.

    Attributes:
        config (MedoxieWithingsConfig): Client credentials and endpoints.
        client (httpx.AsyncClient): The HTTP client used for token requests.
    """

    def __init__(
        self,
        config: MedoxieWithingsConfig,
        client: httpx.AsyncClient,
        clock: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the WithingsOAuthClient.

        Args:
            config: The configuration object.
            client: The async HTTP client to use for requests.
            clock: Returns the current time in milliseconds, used to compute `expires_at`.
        """
        self.config = config
        self.client = client
        self.clock = clock or now_ms
        self.token_url = f"{self.config.api_base_url}/v2/oauth2"

    def build_authorize_url(self, state: str) -> str:
        """
        Builds the Withings consent page URL for a previously issued state token.

        Args:
            state: The opaque state value bound to the user starting the flow.

        Returns:
            str: The absolute authorize URL.
        """
        url = httpx.URL(
            f"{self.config.oauth_base_url}/oauth2_user/authorize2",
            params={
                "response_type": "code",
                "client_id": self.config.client_id,
                "redirect_uri": self.config.redirect_uri,
                "scope": self.config.scopes,
                "state": state,
            },
        )
        return str(url)

    async def exchange_code(self, code: str) -> TokenBundle:
        """
        Exchanges an authorization code for tokens.

        Raises:
            ProviderError: If Withings rejects the request.
            TokenDecodeError: If the response lacks tokens.
            httpx.HTTPError: For transport failures.
        """
        return await self._request_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            }
        )

    async def refresh(self, refresh_token: str) -> TokenBundle:
        """
        Exchanges a refresh token for a new TokenBundle. Withings rotates the refresh token.

        Raises:
            ProviderError: If Withings rejects the request (e.g. revoked refresh token).
            TokenDecodeError: If the response lacks tokens.
            httpx.HTTPError: For transport failures.
        """
        return await self._request_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )

    async def _request_token(self, grant: dict[str, str]) -> TokenBundle:
        data = {
            "action": "requesttoken",
            "client_id": self.config.client_id,
            "client_secret": self.config.client_secret.get_secret_value(),
            **grant,
        }
        status_code, payload = await fetch_json(
            self.client,
            self.token_url,
            method="POST",
            max_bytes=self.config.max_response_bytes,
            data=data,
        )
        bundle = self.parse_token_response(payload, status_code)
        logger.info(f"Withings token request succeeded (grant_type={grant['grant_type']})")
        return bundle

    def parse_token_response(self, payload: Any, status_code: int = 200) -> TokenBundle:
        """
        Maps a Withings token response into a TokenBundle.

        Args:
            payload: The decoded JSON body.
            status_code: The HTTP status of the response.

        Returns:
            TokenBundle: The tokens, with `expires_at` made absolute.

        Raises:
            ProviderError: If the envelope or HTTP status reports a failure.
            TokenDecodeError: If the body is missing required fields.
        """
        try:
            envelope = WithingsEnvelope.model_validate(payload)
        except ValidationError as e:
            raise TokenDecodeError(f"Invalid token response: {e.error_count()} error(s)", status_code) from e

        if envelope.failed:
            logger.warning(f"Withings token request failed: status={envelope.status} error={envelope.error}")
            raise ProviderError(
                f"withings_error:{envelope.status}:{envelope.error or 'unknown_error'}",
                status=envelope.status,
                code=envelope.error,
            )
        if status_code >= 400:
            raise ProviderError(f"Withings token endpoint returned HTTP {status_code}", status=status_code)

        try:
            body = RawTokenBody.model_validate(envelope.body or {})
        except ValidationError as e:
            raise TokenDecodeError(f"Invalid token response body: {e.error_count()} error(s)") from e

        if not body.access_token or not body.refresh_token:
            raise TokenDecodeError("withings_error:invalid_token_response")

        return TokenBundle.from_expires_in(
            access_token=body.access_token,
            refresh_token=body.refresh_token,
            expires_in=body.expires_in,
            scope=body.scope or self.config.scopes,
            now_ms=self.clock(),
        )
