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
Configuration for the medoxie-withings package.
"""

from typing import Literal

from pydantic import Field, SecretStr, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

LENS_API_URLS = {
    "production": "https://api.lens.xyz/graphql",
    "development": "https://api.testnet.lens.xyz/graphql",
}

DEFAULT_SCOPES = "user.metrics,user.activity,user.sleepevents"


class MedoxieWithingsConfig(BaseSettings):
    """
    Configuration settings for medoxie-withings.

    Attributes:
        client_id (str): The Withings OAuth client id.
        client_secret (SecretStr): The Withings OAuth client secret. Never sent to browsers.
        redirect_uri (str): The registered OAuth callback URL.
        api_base_url (str): Base URL of the Withings API (token and data endpoints).
        oauth_base_url (str): Base URL of the Withings account (authorize) pages.
        scopes (str): Comma-separated OAuth scopes to request.
        store_url (SecretStr | None): Redis URL of the token and state store.
        key_prefix (str): Namespace prepended to every store key.
        state_ttl_seconds (int): Lifetime of an OAuth state token.
        timestamp_tolerance_ms (int): Accepted clock skew of a signed request, both directions.
        refresh_window_ms (int): Tokens expiring within this window are refreshed before use.
        lens_environment (str): Which Lens API to query for profile ownership.
        pii_salt (SecretStr): Salt for anonymizing addresses and user ids in logs.
    """

    model_config = SettingsConfigDict(
        env_prefix="WITHINGS_",
        case_sensitive=False,
    )

    client_id: str
    client_secret: SecretStr
    unsafe_local_dev: bool = False
    redirect_uri: str
    api_base_url: str = "https://wbsapi.withings.net"
    oauth_base_url: str = "https://account.withings.com"
    scopes: str = DEFAULT_SCOPES
    http_timeout: float = Field(default=10.0, gt=0, description="Timeout in seconds for all upstream calls.")
    max_response_bytes: int = Field(default=1_000_000, gt=0)
    store_url: SecretStr | None = None
    key_prefix: str = "withings:"
    state_ttl_seconds: int = Field(default=600, ge=1)
    timestamp_tolerance_ms: int = Field(default=5 * 60 * 1000, ge=0)
    refresh_window_ms: int = Field(default=30_000, ge=0)
    lens_environment: Literal["production", "development"] = "production"
    pii_salt: SecretStr = SecretStr("medoxie-unsafe-default-salt")

    @field_validator("redirect_uri", mode="after")
    @classmethod
    def validate_https(cls, v: str, info: ValidationInfo) -> str:
        """
        Ensures that the OAuth redirect uses HTTPS, unless strictly opted out for local dev.
        """
        if not v.startswith("https://") and not info.data.get("unsafe_local_dev", False):
            raise ValueError(
                "WITHINGS_REDIRECT_URI must use https. Set 'unsafe_local_dev=True' only for local testing."
            )
        return v

    @field_validator("api_base_url", "oauth_base_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("scopes", mode="after")
    @classmethod
    def normalize_scopes(cls, v: str) -> str:
        """
        Normalizes scopes to a comma-separated list without blanks.
        Falls back to the default scopes if nothing remains.
        """
        scopes = [s.strip() for s in v.split(",") if s.strip()]
        return ",".join(scopes) if scopes else DEFAULT_SCOPES

    @property
    def lens_api_url(self) -> str:
        return LENS_API_URLS[self.lens_environment]
