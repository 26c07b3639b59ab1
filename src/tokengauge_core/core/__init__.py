# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Core package for TokenGauge.

Provides shared infrastructure used by the provider client, the usage cache
store and both display surfaces:
- types: Snapshot and cache entry dataclasses
- errors: The error taxonomy
- config: GaugeConfig and its loader
- constants: Default values and magic numbers
"""

from .types import (
    SCHEMA_VERSION,
    CacheEntry,
    FetchStatus,
    ProviderId,
    UsageSnapshot,
    UsageWindow,
    WindowUsage,
)

from .errors import (
    CacheCorruptError,
    CacheError,
    CacheWriteError,
    ConfigError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderParseError,
    RefreshInProgressError,
    TokenGaugeError,
)

from .config import (
    DegradedDisplay,
    GaugeConfig,
    ProviderConfig,
    Thresholds,
    load_config,
    parse_config,
    write_default_config,
)

__all__ = [
    # Types
    "SCHEMA_VERSION",
    "CacheEntry",
    "FetchStatus",
    "ProviderId",
    "UsageSnapshot",
    "UsageWindow",
    "WindowUsage",
    # Errors
    "CacheCorruptError",
    "CacheError",
    "CacheWriteError",
    "ConfigError",
    "ProviderAuthError",
    "ProviderError",
    "ProviderNetworkError",
    "ProviderNotConfiguredError",
    "ProviderParseError",
    "RefreshInProgressError",
    "TokenGaugeError",
    # Config
    "DegradedDisplay",
    "GaugeConfig",
    "ProviderConfig",
    "Thresholds",
    "load_config",
    "parse_config",
    "write_default_config",
]
