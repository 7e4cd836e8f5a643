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
Tests for LensAccountClient (ownership oracle and user-id resolver).
"""

import json
from collections.abc import Callable
from typing import Any

import httpx
import pytest

from medoxie_withings.ownership import ACCOUNT_QUERY, LensAccountClient

WALLET = "0x" + "ab" * 20
PROFILE = "0x" + "cd" * 20


def make_lens(handler: Callable[[httpx.Request], httpx.Response]) -> LensAccountClient:
    return LensAccountClient(httpx.AsyncClient(transport=httpx.MockTransport(handler)), "https://lens.test/graphql")


def account_response(account: dict[str, Any] | None) -> Callable[[httpx.Request], httpx.Response]:
    return lambda r: httpx.Response(200, json={"data": {"account": account}})


@pytest.mark.asyncio
async def test_owns_sends_account_query() -> None:
    captured: dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"account": {"address": WALLET.upper().replace("0X", "0x")}}})

    lens = make_lens(handler)
    assert await lens.owns(WALLET, PROFILE) is True
    assert captured["url"] == "https://lens.test/graphql"
    assert captured["body"] == {"query": ACCOUNT_QUERY, "variables": {"request": {"address": PROFILE}}}


@pytest.mark.asyncio
async def test_owns_address_mismatch() -> None:
    lens = make_lens(account_response({"address": "0x" + "ef" * 20}))
    assert await lens.owns(WALLET, PROFILE) is False


@pytest.mark.asyncio
async def test_owns_account_not_found() -> None:
    lens = make_lens(account_response(None))
    assert await lens.owns(WALLET, PROFILE) is False


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "handler",
    [
        lambda r: httpx.Response(200, json={"errors": [{"message": "boom"}]}),
        lambda r: httpx.Response(500, json={}),
        lambda r: httpx.Response(200, text="not json"),
        lambda r: httpx.Response(200, json={"data": {"account": {"owner": "0x1"}}}),
    ],
)
async def test_owns_never_raises_on_bad_responses(handler: Callable[[httpx.Request], httpx.Response]) -> None:
    lens = make_lens(handler)
    assert await lens.owns(WALLET, PROFILE) is False


@pytest.mark.asyncio
async def test_owns_transport_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("unreachable")

    assert await make_lens(handler).owns(WALLET, PROFILE) is False


@pytest.mark.asyncio
async def test_owns_rejects_non_address_profile_without_request() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={})

    assert await make_lens(handler).owns(WALLET, "alice.lens") is False
    assert calls == []


@pytest.mark.asyncio
async def test_resolve_user_id_from_attributes() -> None:
    lens = make_lens(
        account_response(
            {
                "address": PROFILE,
                "metadata": {
                    "attributes": [
                        {"key": "website", "value": "https://example.com"},
                        {"key": "WithingsEmail", "value": "alice@example.com"},
                        {"key": "email", "value": "other@example.com"},
                    ]
                },
            }
        )
    )
    assert await lens.resolve_user_id(PROFILE) == "alice@example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "account",
    [
        None,
        {"address": PROFILE},
        {"address": PROFILE, "metadata": None},
        {"address": PROFILE, "metadata": {"attributes": [{"key": "website", "value": "x"}]}},
    ],
)
async def test_resolve_user_id_none(account: dict[str, Any] | None) -> None:
    assert await make_lens(account_response(account)).resolve_user_id(PROFILE) is None
