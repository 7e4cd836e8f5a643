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
Tests for WithingsOAuthClient.
"""

from collections.abc import Callable
from typing import Any
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from conftest import NOW_MS

from medoxie_withings.config import MedoxieWithingsConfig
from medoxie_withings.exceptions import OversizedResponseError, ProviderError, TokenDecodeError
from medoxie_withings.oauth import WithingsOAuthClient

TOKEN_OK = {
    "status": 0,
    "body": {
        "userid": "123",
        "access_token": "access-new",
        "refresh_token": "refresh-new",
        "expires_in": 10800,
        "scope": "user.metrics,user.activity",
        "token_type": "Bearer",
    },
}


def make_oauth(
    config: MedoxieWithingsConfig,
    clock: Callable[[], int],
    handler: Callable[[httpx.Request], httpx.Response],
) -> WithingsOAuthClient:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WithingsOAuthClient(config, client, clock=clock)


def test_build_authorize_url(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    oauth = make_oauth(config, clock, lambda r: httpx.Response(500))

    url = urlparse(oauth.build_authorize_url("state-123"))
    params = parse_qs(url.query)

    assert f"{url.scheme}://{url.netloc}{url.path}" == "https://account.withings.com/oauth2_user/authorize2"
    assert params == {
        "response_type": ["code"],
        "client_id": ["cid"],
        "redirect_uri": ["https://medoxie.test/api/withings/auth/callback"],
        "scope": ["user.metrics,user.activity,user.sleepevents"],
        "state": ["state-123"],
    }


@pytest.mark.asyncio
async def test_exchange_code(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["form"] = parse_qs(request.content.decode())
        return httpx.Response(200, json=TOKEN_OK)

    oauth = make_oauth(config, clock, handler)
    bundle = await oauth.exchange_code("the-code")

    assert captured["url"] == "https://wbsapi.withings.net/v2/oauth2"
    assert captured["form"] == {
        "action": ["requesttoken"],
        "client_id": ["cid"],
        "client_secret": ["csecret"],
        "grant_type": ["authorization_code"],
        "code": ["the-code"],
        "redirect_uri": ["https://medoxie.test/api/withings/auth/callback"],
    }
    assert bundle.access_token == "access-new"
    assert bundle.refresh_token == "refresh-new"
    assert bundle.expires_at == NOW_MS + 10800 * 1000
    assert bundle.scope == "user.metrics,user.activity"


@pytest.mark.asyncio
async def test_refresh(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    forms: list[dict[str, list[str]]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        forms.append(parse_qs(request.content.decode()))
        body = {**TOKEN_OK["body"]}
        del body["scope"]
        return httpx.Response(200, json={"status": 0, "body": body})

    oauth = make_oauth(config, clock, handler)
    bundle = await oauth.refresh("refresh-old")

    assert forms[0]["grant_type"] == ["refresh_token"]
    assert forms[0]["refresh_token"] == ["refresh-old"]
    assert "code" not in forms[0]
    # Missing scope falls back to the configured scopes
    assert bundle.scope == config.scopes


@pytest.mark.asyncio
async def test_envelope_error_is_provider_error(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    oauth = make_oauth(
        config, clock, lambda r: httpx.Response(200, json={"status": 503, "error": "invalid_token"})
    )

    with pytest.raises(ProviderError) as exc:
        await oauth.refresh("refresh-old")

    assert exc.value.status == 503
    assert exc.value.code == "invalid_token"
    assert exc.value.is_invalid_token
    assert str(exc.value) == "withings_error:503:invalid_token"


@pytest.mark.asyncio
async def test_http_error_status(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    oauth = make_oauth(config, clock, lambda r: httpx.Response(401, json={}))

    with pytest.raises(ProviderError) as exc:
        await oauth.refresh("refresh-old")
    assert exc.value.status == 401


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"status": 0},
        {"status": 0, "body": {}},
        {"status": 0, "body": {"access_token": "a"}},
        {"status": 0, "body": {"refresh_token": "r", "expires_in": 10}},
        {"status": 0, "body": {"access_token": "a", "refresh_token": "r", "expires_in": -1}},
        {"status": 0, "body": {"access_token": "a", "refresh_token": "r"}},
        {"status": 0, "body": "nope"},
        ["not", "an", "object"],
    ],
)
async def test_incomplete_token_response(
    config: MedoxieWithingsConfig, clock: Callable[[], int], payload: Any
) -> None:
    oauth = make_oauth(config, clock, lambda r: httpx.Response(200, json=payload))

    with pytest.raises(TokenDecodeError):
        await oauth.exchange_code("c")


@pytest.mark.asyncio
async def test_oversized_token_response(config: MedoxieWithingsConfig, clock: Callable[[], int]) -> None:
    config = config.model_copy(update={"max_response_bytes": 64})
    oauth = make_oauth(config, clock, lambda r: httpx.Response(200, json=TOKEN_OK))

    with pytest.raises(OversizedResponseError):
        await oauth.exchange_code("c")
