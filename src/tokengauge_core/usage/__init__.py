# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Usage cache package.

- storage: Cache backends and (de)serialization
- lease: Cross-process refresh lease
- manager: UsageCacheStore, the public cache API
"""

from .lease import LeaseRecord, RefreshLease
from .manager import UsageCacheStore, build_store, carry_forward, clamp_reset
from .storage import (
    CacheBackend,
    FileCacheBackend,
    MemoryCacheBackend,
    deserialize_entry,
    serialize_entry,
)

__all__ = [
    "CacheBackend",
    "FileCacheBackend",
    "MemoryCacheBackend",
    "serialize_entry",
    "deserialize_entry",
    "LeaseRecord",
    "RefreshLease",
    "UsageCacheStore",
    "build_store",
    "carry_forward",
    "clamp_reset",
]
