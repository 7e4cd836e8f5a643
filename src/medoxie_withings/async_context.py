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
Async Context Management for the request-scoped AuthorizedUser.
"""

from contextvars import ContextVar

from medoxie_withings.models import AuthorizedUser

# Scoped to the current task; never shared across requests.
_current_user: ContextVar[AuthorizedUser | None] = ContextVar("current_user", default=None)


def get_current_user() -> AuthorizedUser | None:
    """
    Retrieve the authorized user of the current request.

    Returns:
        AuthorizedUser | None: The current user, or None if the request was not authenticated.
    """
    return _current_user.get()


def set_current_user(user: AuthorizedUser) -> None:
    """
    Set the authorized user for the current async task.

    Args:
        user: The AuthorizedUser to set.
    """
    _current_user.set(user)


def clear_current_user() -> None:
    """
    Clear the current user (reset to None).
    """
    _current_user.set(None)
