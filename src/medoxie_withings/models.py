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
Data models for the medoxie-withings package.
"""

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, ConfigDict, Field, field_validator

CANONICAL_MESSAGE_TITLE = "Medoxie Withings API Access"


class AuthErrorKind(StrEnum):
    MISSING_HEADERS = "missing_auth_headers"
    INVALID_MESSAGE_ENCODING = "invalid_message_encoding"
    INVALID_TIMESTAMP = "invalid_timestamp"
    TIMESTAMP_OUT_OF_RANGE = "timestamp_out_of_range"
    MESSAGE_MISMATCH = "message_mismatch"
    INVALID_SIGNATURE_FORMAT = "invalid_signature_format"
    INVALID_SIGNATURE = "invalid_signature"
    SIGNATURE_MISMATCH = "signature_mismatch"


class TokenStatusKind(StrEnum):
    OK = "ok"
    NOT_CONNECTED = "not_connected"
    REAUTH_REQUIRED = "reauth_required"


def build_canonical_message(address: str, profile_id: str, timestamp: str, path: str) -> str:
    """
    Builds the exact message a client must sign for a request to `path`.

    Args:
        address: The wallet address, already lowercased.
        profile_id: The profile id, already lowercased.
        timestamp: The decimal millisecond timestamp, exactly as sent.
        path: The request path the signature is bound to.

    Returns:
        str: The canonical message, lines joined by a single newline.
    """
    return "\n".join(
        [
            CANONICAL_MESSAGE_TITLE,
            f"address: {address}",
            f"profileId: {profile_id}",
            f"timestamp: {timestamp}",
            f"path: {path}",
        ]
    )


class Identity(BaseModel):
    """
    The (wallet address, profile id) pair a request claims to act as.

    Both fields are normalized to lowercase on construction. Derived per request
    and used only as a lookup key, never persisted.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    address: str = Field(..., pattern=r"^0x[0-9a-fA-F]{40}$")
    profile_id: str = Field(..., min_length=1)

    @field_validator("address", "profile_id", mode="after")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.lower()


class VerifiedAuth(BaseModel):
    """
    Proof that a request was signed by the wallet owning `address`.

    Produced exclusively by `SignedRequestAuthenticator` and scoped to one request.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    address: str = Field(..., description="The recovered signer address, lowercased.")
    profile_id: str = Field(..., description="The claimed profile id, lowercased.")
    timestamp: int = Field(..., description="The signed timestamp in milliseconds since epoch.")
    path: str = Field(..., description="The request path the signature is bound to.")

    @property
    def identity(self) -> Identity:
        return Identity(address=self.address, profile_id=self.profile_id)


class SignedEnvelope(BaseModel):
    """
    The five caller-supplied values of a signed request, as read from headers.
    """

    model_config = ConfigDict(frozen=True)

    address: str
    profile_id: str
    timestamp: str
    encoded_message: str
    signature: str


class TokenBundle(BaseModel):
    """
    Withings OAuth tokens for one user, with an absolute expiry.

    This model is frozen: a refresh replaces the whole bundle.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    expires_at: int = Field(..., description="Absolute expiry in milliseconds since epoch.")
    scope: str = ""

    @classmethod
    def from_expires_in(
        cls, access_token: str, refresh_token: str, expires_in: int, scope: str, now_ms: int
    ) -> Self:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now_ms + expires_in * 1000,
            scope=scope,
        )

    def is_fresh(self, now_ms: int, window_ms: int) -> bool:
        """True when the access token stays valid for more than `window_ms` from `now_ms`."""
        return self.expires_at > now_ms + window_ms

    def __repr__(self) -> str:
        # Token values MUST be redacted in __repr__
        return (
            f"TokenBundle(access_token='<REDACTED>', "
            f"refresh_token='<REDACTED>', "
            f"expires_at={self.expires_at!r}, "
            f"scope={self.scope!r})"
        )

    def __str__(self) -> str:
        return self.__repr__()


class TokenStatus(BaseModel):
    """
    Outcome of a token lookup. `tokens` is only set when `kind` is `ok`;
    `authorize_url` only on non-`ok` outcomes returned by `AuthorizedRequestFlow.request`.
    """

    model_config = ConfigDict(frozen=True)

    kind: TokenStatusKind
    tokens: TokenBundle | None = None
    authorize_url: str | None = None

    @classmethod
    def ok(cls, tokens: TokenBundle) -> Self:
        return cls(kind=TokenStatusKind.OK, tokens=tokens)

    @classmethod
    def not_connected(cls) -> Self:
        return cls(kind=TokenStatusKind.NOT_CONNECTED)

    @classmethod
    def reauth_required(cls) -> Self:
        return cls(kind=TokenStatusKind.REAUTH_REQUIRED)

    @property
    def is_ok(self) -> bool:
        return self.kind is TokenStatusKind.OK


class AuthorizedUser(BaseModel):
    """
    A verified request identity together with the key its tokens are stored under.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    auth: VerifiedAuth
    user_id: str = Field(..., min_length=1)
