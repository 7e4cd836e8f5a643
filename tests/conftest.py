# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/medoxie_withings

import base64
from collections.abc import Callable
from typing import Any

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount

from medoxie_withings.config import MedoxieWithingsConfig
from medoxie_withings.models import TokenBundle, build_canonical_message
from medoxie_withings.store import MemoryKeyValueStore

# Fixed wall clock for deterministic timestamp checks
NOW_MS = 1_700_000_000_000

PROFILE_ID = "0x00000000000000000000000000000000000000AA"


def sign_headers(
    account: LocalAccount,
    path: str,
    profile_id: str = PROFILE_ID,
    timestamp: int = NOW_MS,
    message: str | None = None,
    address: str | None = None,
) -> dict[str, str]:
    """
    Builds the five signed-request headers the way a browser client would.
    `message` overrides the signed text; `address` overrides the address header only.
    """
    header_address = address or account.address
    if message is None:
        message = build_canonical_message(account.address.lower(), profile_id.lower(), str(timestamp), path)
    signed = account.sign_message(encode_defunct(text=message))
    return {
        "x-medoxie-address": header_address,
        "x-medoxie-profile-id": profile_id,
        "x-medoxie-timestamp": str(timestamp),
        "x-medoxie-message": base64.b64encode(message.encode("utf-8")).decode("ascii"),
        "x-medoxie-signature": "0x" + bytes(signed.signature).hex(),
    }


@pytest.fixture
def account() -> LocalAccount:
    return Account.from_key("0x" + "4c" * 32)


@pytest.fixture
def other_account() -> LocalAccount:
    return Account.from_key("0x" + "5d" * 32)


@pytest.fixture
def signed_headers(account: LocalAccount) -> Callable[..., dict[str, str]]:
    def _sign(path: str, **kwargs: Any) -> dict[str, str]:
        return sign_headers(account, path, **kwargs)

    return _sign


@pytest.fixture
def clock() -> Callable[[], int]:
    return lambda: NOW_MS


@pytest.fixture
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture
def config() -> MedoxieWithingsConfig:
    return MedoxieWithingsConfig(
        client_id="cid",
        client_secret="csecret",
        redirect_uri="https://medoxie.test/api/withings/auth/callback",
    )


def make_bundle(expires_at: int, access_token: str = "access-1", refresh_token: str = "refresh-1") -> TokenBundle:
    return TokenBundle(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=expires_at,
        scope="user.metrics",
    )
