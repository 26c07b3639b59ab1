# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""Shared fixtures for the test suites."""

from typing import List, Optional

from tokengauge_core.core.config import GaugeConfig, ProviderConfig
from tokengauge_core.core.types import UsageSnapshot, UsageWindow, WindowUsage
from tokengauge_core.providers.scripted import ScriptedProviderClient
from tokengauge_core.usage.manager import UsageCacheStore
from tokengauge_core.usage.storage import CacheBackend, MemoryCacheBackend

T0 = 1_767_225_600.0  # 2026-01-01T00:00:00Z


class FakeClock:
    """Manually advanced epoch clock; ``sleep`` advances it."""

    def __init__(self, start: float = T0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def snapshot(
    used: float,
    limit: Optional[float] = 100,
    window: UsageWindow = UsageWindow.DAILY,
    reset_at: Optional[float] = None,
    weekly: Optional[WindowUsage] = None,
) -> UsageSnapshot:
    windows = {UsageWindow.WEEKLY.value: weekly} if weekly is not None else {}
    return UsageSnapshot(
        used=used,
        limit=limit,
        window=window,
        reset_at=reset_at,
        windows=windows,
        source="oauth",
    )


def make_config(*names: str, refresh_secs: int = 600) -> GaugeConfig:
    config = GaugeConfig(refresh_secs=refresh_secs)
    if names:
        config.providers = [ProviderConfig(name) for name in names]
    return config


def make_store(
    client: ScriptedProviderClient,
    clock: FakeClock,
    backend: Optional[CacheBackend] = None,
    holder: Optional[str] = None,
    lease_stale_after: float = 60.0,
    lease_wait: float = 2.0,
) -> UsageCacheStore:
    return UsageCacheStore(
        backend if backend is not None else MemoryCacheBackend(),
        client,
        clock=clock,
        sleep=clock.sleep,
        lease_stale_after=lease_stale_after,
        lease_wait=lease_wait,
        holder=holder,
    )
