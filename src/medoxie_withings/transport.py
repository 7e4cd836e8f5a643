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
Size-capped JSON fetching over httpx, shared by the Withings and Lens clients.
"""

import json
from typing import Any

import httpx

from medoxie_withings.exceptions import OversizedResponseError, UpstreamResponseError
from medoxie_withings.utils.logger import logger

DEFAULT_MAX_BYTES = 1_000_000


async def fetch_json(
    client: httpx.AsyncClient,
    url: str,
    method: str = "GET",
    max_bytes: int = DEFAULT_MAX_BYTES,
    **kwargs: Any,
) -> tuple[int, Any]:
    """
    Performs a request and parses the JSON body without reading more than `max_bytes`.

    Error statuses are not raised here: Withings reports failures inside a 200
    envelope as often as through the HTTP status, so callers inspect both.

    Args:
        client: The async HTTP client to use.
        url: The URL to request.
        method: The HTTP method.
        max_bytes: Upper bound on the response body size.
        **kwargs: Passed through to `client.stream` (data, json, headers, ...).

    Returns:
        tuple[int, Any]: The HTTP status code and the decoded JSON body.

    Raises:
        OversizedResponseError: If the body exceeds `max_bytes`.
        UpstreamResponseError: If the body is not valid JSON.
        httpx.HTTPError: For transport failures.
    """
    async with client.stream(method, url, **kwargs) as response:
        content_length = response.headers.get("Content-Length")
        if content_length:
            try:
                if int(content_length) > max_bytes:
                    raise OversizedResponseError(f"Response from {url} too large")
            except ValueError:
                pass

        content = bytearray()
        async for chunk in response.aiter_bytes():
            content.extend(chunk)
            if len(content) > max_bytes:
                raise OversizedResponseError(f"Response from {url} too large")

        try:
            payload = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Non-JSON response from {url} (status {response.status_code})")
            raise UpstreamResponseError(
                f"Invalid JSON response from {url} (status {response.status_code})"
            ) from e

        return response.status_code, payload
