# Copyright (c) 2025 CoReason, Inc.
#
# This software is proprietary and dual-licensed.
# Licensed under the Prosperity Public License 3.0 (the "License").
# A copy of the license is available at https://prosperitylicense.com/versions/3.0.0
# For details, see the LICENSE file.
# Commercial use beyond a 30-day trial requires a separate license.
#
# Source Code: https://github.com/CoReason-AI/medoxie_withings

import hashlib
import hmac
import inspect
import logging
import os
import sys
from pathlib import Path
from typing import Any

from loguru import logger
from opentelemetry import trace
from pydantic import SecretStr

__all__ = ["logger", "configure_logging", "anonymize"]


class InterceptHandler(logging.Handler):
    """
    Forwards stdlib `logging` records (httpx, redis, opentelemetry) to loguru,
    attributed to the module that emitted them.
    """

    def emit(self, record: logging.LogRecord) -> None:
        level: str | int
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = inspect.currentframe(), 0
        while frame is not None and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def add_span_context(record: dict[str, Any]) -> None:
    """
    Loguru patcher: tags records emitted inside an OpenTelemetry span with its ids,
    so Withings and Lens calls can be matched to their traces.
    """
    span_context = trace.get_current_span().get_span_context()
    if not span_context.is_valid:
        return
    record["extra"].update(
        trace_id=trace.format_trace_id(span_context.trace_id),
        span_id=trace.format_span_id(span_context.span_id),
    )


def anonymize(value: str, salt: SecretStr) -> str:
    """
    Anonymizes a value using HMAC-SHA256 with the given salt.

    Wallet addresses and user ids are personal data; log this digest instead.

    Args:
        value: The value to anonymize.
        salt: The configured PII salt.

    Returns:
        str: The first 16 hex characters of the digest.
    """
    return hmac.new(
        salt.get_secret_value().encode("utf-8"),
        value.lower().encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()[:16]


_CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging() -> None:
    """
    (Re)configures loguru from `MEDOXIE_LOG_LEVEL` and `MEDOXIE_LOG_JSON`.

    Console output is JSON on stdout or colored text on stderr. A rotating JSON
    file sink under `logs/` is added when the directory is writable.
    """
    level = os.getenv("MEDOXIE_LOG_LEVEL", "INFO").upper()
    try:
        logger.level(level)
    except ValueError:
        level = "INFO"
    as_json = os.getenv("MEDOXIE_LOG_JSON", "false").lower() == "true"

    logger.configure(handlers=[], patcher=add_span_context)  # type: ignore[arg-type]
    if as_json:
        logger.add(sys.stdout, level=level, serialize=True)
    else:
        logger.add(sys.stderr, level=level, format=_CONSOLE_FORMAT)

    try:
        Path("logs").mkdir(parents=True, exist_ok=True)
        logger.add(
            "logs/app.log",
            rotation="500 MB",
            retention="10 days",
            serialize=True,
            enqueue=True,
            level=level,
        )
    except OSError:
        # Read-only filesystem: console only
        pass

    stdlib_level = logging.getLevelNamesMapping().get(level, logging.INFO)
    logging.basicConfig(handlers=[InterceptHandler()], level=stdlib_level, force=True)


configure_logging()
