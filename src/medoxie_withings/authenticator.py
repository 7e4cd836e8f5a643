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
SignedRequestAuthenticator component for verifying wallet-signed requests.
"""

import base64
import binascii
import re
from collections.abc import Callable, Mapping, Sequence

import anyio
from eth_account import Account
from eth_account.messages import encode_defunct
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode
from pydantic import SecretStr

from medoxie_withings.exceptions import (
    AuthenticationError,
    InvalidMessageEncodingError,
    InvalidSignatureError,
    InvalidSignatureFormatError,
    InvalidTimestampError,
    MessageMismatchError,
    MissingHeadersError,
    SignatureMismatchError,
    TimestampOutOfRangeError,
)
from medoxie_withings.models import SignedEnvelope, VerifiedAuth, build_canonical_message
from medoxie_withings.utils.clock import now_ms
from medoxie_withings.utils.logger import anonymize, logger

tracer = trace.get_tracer(__name__)

ADDRESS_HEADER = "x-medoxie-address"
PROFILE_ID_HEADER = "x-medoxie-profile-id"
TIMESTAMP_HEADER = "x-medoxie-timestamp"
MESSAGE_HEADER = "x-medoxie-message"
SIGNATURE_HEADER = "x-medoxie-signature"

REQUIRED_HEADERS = (ADDRESS_HEADER, PROFILE_ID_HEADER, TIMESTAMP_HEADER, MESSAGE_HEADER, SIGNATURE_HEADER)

TIMESTAMP_TOLERANCE_MS = 5 * 60 * 1000

_TIMESTAMP_RE = re.compile(r"-?[0-9]+")

HeaderValue = str | Sequence[str] | None


def recover_personal_sign_address(message: str, signature: str) -> str:
    """
    Recovers the address that produced an EIP-191 personal-message signature.

    Raises:
        Exception: Whatever `eth_account` raises for a malformed signature.
    """
    return Account.recover_message(encode_defunct(text=message), signature=signature)  # type: ignore[no-any-return]


def _header(headers: Mapping[str, HeaderValue], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        return None
    if not isinstance(value, str):
        value = value[0] if len(value) > 0 else None
    return value or None


def extract_envelope(headers: Mapping[str, HeaderValue]) -> SignedEnvelope:
    """
    Reads the five signed-request values from a header mapping, case-insensitively.

    Args:
        headers: Request headers. Multi-valued headers use their first value.

    Returns:
        SignedEnvelope: The raw, unverified values.

    Raises:
        MissingHeadersError: If any value is absent or empty.
    """
    normalized: dict[str, HeaderValue] = {}
    for key, value in headers.items():
        normalized.setdefault(key.lower(), value)
    values = {name: _header(normalized, name) for name in REQUIRED_HEADERS}

    missing = [name for name, value in values.items() if not value]
    if missing:
        raise MissingHeadersError(f"Missing required authentication headers: {', '.join(missing)}")

    return SignedEnvelope(
        address=values[ADDRESS_HEADER],
        profile_id=values[PROFILE_ID_HEADER],
        timestamp=values[TIMESTAMP_HEADER],
        encoded_message=values[MESSAGE_HEADER],
        signature=values[SIGNATURE_HEADER],
    )


def decode_message(encoded_message: str) -> str:
    """
    Decodes the base64 message header into text. Missing padding is tolerated.

    Raises:
        InvalidMessageEncodingError: If the value is not base64 or not UTF-8.
    """
    raw = encoded_message.strip()
    padding = "=" * (-len(raw) % 4)
    try:
        return base64.b64decode(raw + padding, validate=True).decode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise InvalidMessageEncodingError(f"Failed to decode base64 message: {e}") from e


class SignedRequestAuthenticator:
    """
    Verifies that a request was signed by the wallet it claims to come from.

    Checks run cheapest first; signature recovery only happens once the message
    is known to be the canonical message for this path and time window.

    Attributes:
        tolerance_ms (int): Accepted clock skew in milliseconds, in both directions.
    """

    def __init__(
        self,
        tolerance_ms: int = TIMESTAMP_TOLERANCE_MS,
        pii_salt: SecretStr | None = None,
        clock: Callable[[], int] = now_ms,
        recover: Callable[[str, str], str] = recover_personal_sign_address,
    ) -> None:
        """
        Initialize the SignedRequestAuthenticator.

        Args:
            tolerance_ms: Maximum accepted |now - timestamp|. Defaults to 5 minutes.
            pii_salt: Salt for anonymizing addresses in logs.
            clock: Returns the current time in milliseconds since epoch.
            recover: Recovers the signer address from (message, signature).
        """
        self.tolerance_ms = tolerance_ms
        self.pii_salt = pii_salt or SecretStr("medoxie-unsafe-default-salt")
        self.clock = clock
        self.recover = recover

    async def verify(self, headers: Mapping[str, HeaderValue], expected_path: str) -> VerifiedAuth:
        """
        Verifies a signed request.

        Emits an OpenTelemetry span `verify_signed_request`.

        Args:
            headers: The request headers (names matched case-insensitively).
            expected_path: The path this request was received on.

        Returns:
            VerifiedAuth: The recovered signer, the claimed profile, the timestamp and the path.

        Raises:
            MissingHeadersError: If a required header is absent or empty.
            InvalidMessageEncodingError: If the message is not base64 UTF-8.
            InvalidTimestampError: If the timestamp is not an integer.
            TimestampOutOfRangeError: If the timestamp is outside the tolerance.
            MessageMismatchError: If the message is not the canonical message for these headers and path.
            InvalidSignatureFormatError: If the signature is not 0x-prefixed.
            InvalidSignatureError: If no signer can be recovered.
            SignatureMismatchError: If the signer is not the claimed address.
        """
        with tracer.start_as_current_span("verify_signed_request") as span:
            span.set_attribute("http.route", expected_path)
            try:
                auth = await self._verify(headers, expected_path)
            except AuthenticationError as e:
                logger.warning(f"Signed request rejected for {expected_path}: {e.error_code}")
                span.record_exception(e)
                span.set_status(Status(StatusCode.ERROR, e.error_code))
                raise

            address_hash = anonymize(auth.address, self.pii_salt)
            logger.info(f"Signed request verified for wallet {address_hash} on {expected_path}")
            span.set_attribute("enduser.id", address_hash)
            span.set_status(Status(StatusCode.OK))
            return auth

    async def _verify(self, headers: Mapping[str, HeaderValue], expected_path: str) -> VerifiedAuth:
        envelope = extract_envelope(headers)
        message = decode_message(envelope.encoded_message)

        if not _TIMESTAMP_RE.fullmatch(envelope.timestamp):
            raise InvalidTimestampError(f"Invalid timestamp format: {envelope.timestamp!r}")
        timestamp = int(envelope.timestamp)

        age = abs(self.clock() - timestamp)
        if age > self.tolerance_ms:
            raise TimestampOutOfRangeError(
                f"Request timestamp too old or too far in future: {age}ms (max: {self.tolerance_ms}ms)"
            )

        address = envelope.address.lower()
        profile_id = envelope.profile_id.lower()
        expected_message = build_canonical_message(address, profile_id, envelope.timestamp, expected_path)
        if message != expected_message:
            raise MessageMismatchError("Signed message does not match the expected address, profile, time or path")

        if not envelope.signature.startswith("0x"):
            raise InvalidSignatureFormatError("Signature must be 0x-prefixed hex")

        try:
            recovered = await anyio.to_thread.run_sync(self.recover, message, envelope.signature)
        except Exception as e:
            raise InvalidSignatureError(f"Signature recovery failed: {e}") from e

        recovered = recovered.lower()
        if recovered != address:
            raise SignatureMismatchError("Signature does not match the claimed address")

        return VerifiedAuth(address=recovered, profile_id=profile_id, timestamp=timestamp, path=expected_path)
