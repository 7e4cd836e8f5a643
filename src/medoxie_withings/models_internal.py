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
Internal data models for the medoxie-withings package.
These decode untyped upstream payloads and are not exposed in the public API.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawTokenBody(BaseModel):
    """
    The `body` of a Withings `requesttoken` response.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    access_token: str | None = None
    refresh_token: str | None = None
    expires_in: int = Field(..., ge=0)
    scope: str | None = None


class WithingsEnvelope(BaseModel):
    """
    The `{status, error, message, body}` wrapper every Withings endpoint returns.
    A `status` of 0 means success.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    status: int | None = None
    error: str | None = None
    message: str | None = None
    body: Any = None

    @property
    def failed(self) -> bool:
        return bool(self.status) and self.status != 0


class LensAttribute(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    key: str | None = None
    value: str | None = None


class LensMetadata(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    attributes: list[LensAttribute] = Field(default_factory=list)


class LensAccount(BaseModel):
    """
    The subset of a Lens account needed for ownership and user-id resolution.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    address: str = Field(..., min_length=1)
    metadata: LensMetadata | None = None
