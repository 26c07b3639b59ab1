# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
TokenGauge core library.

Shared usage cache and render contract behind the TokenGauge status-bar
module and terminal dashboard.
"""

import logging

from .core import (
    CacheEntry,
    CacheError,
    ConfigError,
    DegradedDisplay,
    FetchStatus,
    GaugeConfig,
    ProviderConfig,
    ProviderError,
    TokenGaugeError,
    UsageSnapshot,
    UsageWindow,
    load_config,
)
from .display import DashboardModel, StatusPayload, degraded_payload, format_status
from .providers import CodexBarClient, ProviderClient, ScriptedProviderClient
from .usage import FileCacheBackend, MemoryCacheBackend, UsageCacheStore, build_store

# Library code logs through this logger; entry points attach handlers
lib_logger = logging.getLogger("tokengauge")
lib_logger.addHandler(logging.NullHandler())

__all__ = [
    "CacheEntry",
    "CacheError",
    "ConfigError",
    "DegradedDisplay",
    "FetchStatus",
    "GaugeConfig",
    "ProviderConfig",
    "ProviderError",
    "TokenGaugeError",
    "UsageSnapshot",
    "UsageWindow",
    "load_config",
    "DashboardModel",
    "StatusPayload",
    "degraded_payload",
    "format_status",
    "CodexBarClient",
    "ProviderClient",
    "ScriptedProviderClient",
    "FileCacheBackend",
    "MemoryCacheBackend",
    "UsageCacheStore",
    "build_store",
]
