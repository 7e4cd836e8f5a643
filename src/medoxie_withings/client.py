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
WithingsClient component for the Withings health-data endpoints.
"""

from typing import Any

import httpx
from pydantic import ValidationError

from medoxie_withings.exceptions import ProviderError
from medoxie_withings.models_internal import WithingsEnvelope
from medoxie_withings.transport import DEFAULT_MAX_BYTES, fetch_json
from medoxie_withings.utils.logger import logger

SLEEP_DATA_FIELDS = (
    "hr,rr,snoring,hrv,breathing_disturbances,deepsleepduration,lightsleepduration,"
    "remsleepduration,wakeupduration,sleep_score,sleep_latency,sleep_efficiency"
)


class WithingsClient:
    """
    Calls Withings data endpoints with a caller-supplied access token.

    Every method raises `ProviderError` on failure; check `is_invalid_token` to
    decide whether a token refresh can help.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_base_url: str = "https://wbsapi.withings.net",
        max_response_bytes: int = DEFAULT_MAX_BYTES,
    ) -> None:
        self.client = client
        self.api_base_url = api_base_url.rstrip("/")
        self.max_response_bytes = max_response_bytes

    async def _fetch(self, path: str, action: str, params: dict[str, str], access_token: str) -> Any:
        url = f"{self.api_base_url}{path}"
        logger.debug(f"Withings API request: {path} action={action} params={sorted(params)}")

        status_code, payload = await fetch_json(
            self.client,
            url,
            method="POST",
            max_bytes=self.max_response_bytes,
            data={"action": action, **params},
            headers={"Authorization": f"Bearer {access_token}"},
        )

        try:
            envelope = WithingsEnvelope.model_validate(payload)
        except ValidationError as e:
            raise ProviderError(f"Invalid Withings response: {e.error_count()} error(s)", status_code) from e

        if envelope.failed:
            logger.warning(f"Withings API error on {path}: status={envelope.status} error={envelope.error}")
            raise ProviderError(
                envelope.message or envelope.error or "Withings API error",
                status=envelope.status,
                code=envelope.error,
            )
        if status_code >= 400:
            raise ProviderError("Withings API error", status=status_code)
        if not envelope.body:
            raise ProviderError("Withings API returned empty body")

        return envelope.body

    async def get_sleep_summary(self, access_token: str, startdate: str, enddate: str) -> Any:
        return await self._fetch(
            "/v2/sleep",
            "getsummary",
            {"startdate": startdate, "enddate": enddate, "data_fields": SLEEP_DATA_FIELDS},
            access_token,
        )

    async def get_measures(self, access_token: str, startdate: str, enddate: str) -> Any:
        return await self._fetch(
            "/v2/measure", "getmeas", {"startdate": startdate, "enddate": enddate}, access_token
        )

    async def get_activity(self, access_token: str, startdate: str, enddate: str) -> Any:
        return await self._fetch(
            "/v2/measure", "getactivity", {"startdate": startdate, "enddate": enddate}, access_token
        )
