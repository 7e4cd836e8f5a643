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
Custom exceptions for the medoxie-withings package.
"""

from medoxie_withings.models import AuthErrorKind


class MedoxieWithingsError(Exception):
    """Base exception for all medoxie-withings errors."""

    error_code: str = "server_error"
    status_code: int = 500


class ConfigurationError(MedoxieWithingsError):
    """Raised when a required collaborator or setting is missing."""


class AuthenticationError(MedoxieWithingsError):
    """
    Raised when a signed request fails verification.

    Every subclass maps to exactly one `AuthErrorKind`, so HTTP layers can translate
    the failure to a response deterministically.
    """

    kind: AuthErrorKind
    status_code = 401

    @property
    def error_code(self) -> str:  # type: ignore[override]
        return self.kind.value


class MissingHeadersError(AuthenticationError):
    """Raised when one or more of the signed request headers are absent or empty."""

    kind = AuthErrorKind.MISSING_HEADERS
    status_code = 400


class InvalidMessageEncodingError(AuthenticationError):
    """Raised when the message header is not base64-encoded UTF-8."""

    kind = AuthErrorKind.INVALID_MESSAGE_ENCODING
    status_code = 400


class InvalidTimestampError(AuthenticationError):
    kind = AuthErrorKind.INVALID_TIMESTAMP
    status_code = 400


class TimestampOutOfRangeError(AuthenticationError):
    """Raised when the request timestamp is outside the accepted clock skew."""

    kind = AuthErrorKind.TIMESTAMP_OUT_OF_RANGE


class MessageMismatchError(AuthenticationError):
    """Raised when the decoded message differs from the canonical message rebuilt from headers."""

    kind = AuthErrorKind.MESSAGE_MISMATCH


class InvalidSignatureFormatError(AuthenticationError):
    kind = AuthErrorKind.INVALID_SIGNATURE_FORMAT
    status_code = 400


class InvalidSignatureError(AuthenticationError):
    """Raised when no signer can be recovered from the signature."""

    kind = AuthErrorKind.INVALID_SIGNATURE


class SignatureMismatchError(AuthenticationError):
    """Raised when the recovered signer is not the claimed address."""

    kind = AuthErrorKind.SIGNATURE_MISMATCH


class ProfileOwnershipError(MedoxieWithingsError):
    """Raised when the verified wallet does not control the claimed profile."""

    error_code = "profile_not_owned"
    status_code = 403


class InvalidRequestError(MedoxieWithingsError):
    """Raised when a request parameter is malformed."""

    error_code = "invalid_request"
    status_code = 400


class InvalidStateError(MedoxieWithingsError):
    """Raised when an OAuth callback presents an unknown, expired or reused state."""

    error_code = "invalid_state"
    status_code = 400


class ProviderError(MedoxieWithingsError):
    """
    Raised when the Withings API reports a failure.

    Attributes:
        status (int | None): The HTTP status or the provider envelope status.
        code (str | None): The provider error code, if any.
    """

    error_code = "withings_error"
    status_code = 502

    def __init__(self, message: str, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.code = code

    @property
    def is_invalid_token(self) -> bool:
        """True when the provider rejected the access token itself."""
        return self.status == 401 or self.code == "invalid_token"


class TokenDecodeError(ProviderError):
    """Raised when a token endpoint response lacks required fields."""


class UpstreamResponseError(MedoxieWithingsError):
    """Raised when an upstream HTTP response cannot be read as JSON."""

    error_code = "upstream_error"
    status_code = 502


class OversizedResponseError(UpstreamResponseError):
    """Raised when an HTTP response is too large."""


class StoreDecodeError(MedoxieWithingsError):
    """Raised when a stored value does not decode into its expected model."""
