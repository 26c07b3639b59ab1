# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Error taxonomy for TokenGauge.

Provider-level errors are non-fatal: the cache store catches them and turns
them into snapshot annotations. Cache-level errors degrade the display but
never abort the caller. Only ConfigError is fatal, and only at startup.
"""

from typing import Optional

from .types import FetchStatus


class TokenGaugeError(Exception):
    """Base class for every error raised by the library."""


class ConfigError(TokenGaugeError):
    """Configuration is malformed or missing a required value."""


# =============================================================================
# PROVIDER ERRORS
# =============================================================================


class ProviderError(TokenGaugeError):
    """
    A single provider could not be fetched.

    Attributes:
        provider: Provider identifier the failure belongs to
        fetch_status: FetchStatus recorded in the cache for this failure
    """

    fetch_status: FetchStatus = FetchStatus.NETWORK_ERROR

    def __init__(self, provider: str, message: str):
        super().__init__(f"{provider}: {message}")
        self.provider = provider
        self.message = message


class ProviderAuthError(ProviderError):
    """Credential is missing, invalid or expired."""

    fetch_status = FetchStatus.AUTH_ERROR


class ProviderNetworkError(ProviderError):
    """Non-zero exit, timeout or transport failure of the usage tool."""

    fetch_status = FetchStatus.NETWORK_ERROR


class ProviderParseError(ProviderError):
    """The usage tool produced output of an unexpected shape."""

    fetch_status = FetchStatus.PARSE_ERROR


class ProviderNotConfiguredError(ProviderError):
    """Provider is disabled in configuration; the tool was not invoked."""

    fetch_status = FetchStatus.NOT_CONFIGURED


# =============================================================================
# CACHE ERRORS
# =============================================================================


class CacheError(TokenGaugeError):
    """Base class for cache file failures."""


class CacheCorruptError(CacheError):
    """Cache file exists but cannot be parsed; treated as absent."""


class CacheWriteError(CacheError):
    """
    Writing the cache failed.

    The write never partially completes, so the previous cache file (if any)
    is still intact when this is raised.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


class RefreshInProgressError(CacheError):
    """Another process holds the refresh lease and no entry exists yet."""

    def __init__(self, holder: str, since: float):
        super().__init__(f"refresh in progress by {holder}")
        self.holder = holder
        self.since = since


__all__ = [
    "TokenGaugeError",
    "ConfigError",
    "ProviderError",
    "ProviderAuthError",
    "ProviderNetworkError",
    "ProviderParseError",
    "ProviderNotConfiguredError",
    "CacheError",
    "CacheCorruptError",
    "CacheWriteError",
    "RefreshInProgressError",
]
