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
Wallet-signed access to Withings health data, keeping provider credentials on the backend.
"""

__version__ = "0.1.0"
__author__ = "Gowtham A Rao"
__email__ = "gowtham.rao@coreason.ai"

from .authenticator import SignedRequestAuthenticator
from .client import WithingsClient
from .config import MedoxieWithingsConfig
from .exceptions import AuthenticationError, MedoxieWithingsError, ProviderError
from .flow import AuthorizedRequestFlow, describe_failure
from .lifecycle import TokenLifecycleManager
from .models import AuthorizedUser, TokenBundle, TokenStatus, TokenStatusKind, VerifiedAuth
from .oauth import WithingsOAuthClient
from .ownership import LensAccountClient
from .state_store import StateTokenStore
from .store import MemoryKeyValueStore, RedisKeyValueStore

__all__ = [
    "AuthenticationError",
    "AuthorizedRequestFlow",
    "AuthorizedUser",
    "LensAccountClient",
    "MedoxieWithingsConfig",
    "MedoxieWithingsError",
    "MemoryKeyValueStore",
    "ProviderError",
    "RedisKeyValueStore",
    "SignedRequestAuthenticator",
    "StateTokenStore",
    "TokenBundle",
    "TokenLifecycleManager",
    "TokenStatus",
    "TokenStatusKind",
    "VerifiedAuth",
    "WithingsClient",
    "WithingsOAuthClient",
    "describe_failure",
]
