# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
UsageCacheStore: the shared usage cache.

This is the main public API of the core. It decides when provider usage has
to be fetched again, persists the result atomically through a backend, and
keeps independent processes from fetching at the same time through the
refresh lease.
"""

import logging
import time
from dataclasses import replace
from typing import Callable, Dict, List, Optional

from ..core.config import GaugeConfig, ProviderConfig
from ..core.constants import LEASE_POLL_INTERVAL
from ..core.errors import (
    CacheCorruptError,
    CacheWriteError,
    ProviderError,
    RefreshInProgressError,
)
from ..core.types import CacheEntry, UsageSnapshot, UsageWindow, WindowUsage
from ..providers.base import ProviderClient
from ..providers.codexbar_client import CodexBarClient
from .lease import RefreshLease
from .storage import CacheBackend, FileCacheBackend, deserialize_entry, serialize_entry

lib_logger = logging.getLogger("tokengauge")


# =============================================================================
# SNAPSHOT MERGING
# =============================================================================


def carry_forward(previous: Optional[UsageSnapshot], error: ProviderError) -> UsageSnapshot:
    """
    Snapshot recorded for a provider whose fetch failed.

    The last-known-good figures survive under the new failure status; with
    nothing to carry, an empty placeholder records the failure.
    """
    if previous is not None and previous.has_data:
        return previous.annotate(error.fetch_status, error.message)
    window = previous.window if previous is not None else UsageWindow.DAILY
    return UsageSnapshot.unknown(error.fetch_status, window=window, error_message=error.message)


def _later_reset(previous: Optional[float], current: Optional[float]) -> Optional[float]:
    if previous is None or current is None:
        return current
    return max(previous, current)


def clamp_reset(previous: Optional[UsageSnapshot], current: UsageSnapshot) -> UsageSnapshot:
    """Keep reset_at from moving backwards within the same window."""
    if previous is None or not previous.has_data:
        return current

    reset_at = current.reset_at
    if previous.window == current.window:
        reset_at = _later_reset(previous.reset_at, current.reset_at)

    windows: Dict[str, WindowUsage] = {}
    for name, figures in current.windows.items():
        prior = previous.windows.get(name)
        if prior is not None:
            figures = replace(figures, reset_at=_later_reset(prior.reset_at, figures.reset_at))
        windows[name] = figures

    if reset_at == current.reset_at and windows == current.windows:
        return current
    return replace(current, reset_at=reset_at, windows=windows)


# =============================================================================
# STORE
# =============================================================================


class UsageCacheStore:
    """
    Fresh-or-refreshed access to the usage cache.

    Args:
        backend: Where the cache document and lease marker live
        client: Provider client used on refresh
        clock: Returns the current epoch time
        sleep: Blocks for the given seconds while waiting on another refresh
        lease_stale_after: Age at which another holder's lease is abandoned
        lease_wait: How long to wait for another process's refresh to land
        poll_interval: Delay between cache re-reads while waiting
        holder: Lease holder id (defaults to host:pid:random)
    """

    def __init__(
        self,
        backend: CacheBackend,
        client: ProviderClient,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        lease_stale_after: float = 60.0,
        lease_wait: float = 2.0,
        poll_interval: float = LEASE_POLL_INTERVAL,
        holder: Optional[str] = None,
    ):
        self.backend = backend
        self.client = client
        self._clock = clock
        self._sleep = sleep
        self.lease_wait = lease_wait
        self.poll_interval = poll_interval
        self.lease = RefreshLease(backend, lease_stale_after, holder=holder, clock=clock)
        self.last_write_error: Optional[CacheWriteError] = None

    # =========================================================================
    # READ
    # =========================================================================

    def load(self) -> Optional[CacheEntry]:
        """
        Read the current cache entry.

        Returns:
            The entry, or None if there is none or it cannot be parsed
        """
        try:
            text = self.backend.read_cache()
            if text is None:
                return None
            return deserialize_entry(text)
        except CacheCorruptError as e:
            lib_logger.warning(f"Ignoring unreadable cache {self.backend.describe()}: {e}")
            return None

    @staticmethod
    def is_fresh(entry: CacheEntry, now: float, ttl: float) -> bool:
        return now - entry.fetched_at < ttl

    def get_or_refresh(self, providers: List[ProviderConfig], ttl: float) -> CacheEntry:
        """
        Return the cached entry if it is fresh, otherwise refresh.

        Raises:
            RefreshInProgressError: Another process is refreshing and there
                is no entry to serve yet
        """
        entry = self.load()
        if entry is not None and self.is_fresh(entry, self._clock(), ttl):
            lib_logger.debug(
                f"Cache hit ({self._clock() - entry.fetched_at:.0f}s old, ttl {ttl:g}s)"
            )
            return entry
        return self.refresh(providers, ttl=ttl)

    # =========================================================================
    # REFRESH
    # =========================================================================

    def refresh(
        self,
        providers: List[ProviderConfig],
        force: bool = False,
        ttl: Optional[float] = None,
    ) -> CacheEntry:
        """
        Fetch every enabled provider and replace the cache entry.

        Failing providers keep their last-known-good figures annotated with
        the failure. A persistence failure is logged and kept in
        ``last_write_error``; the new entry is returned regardless.

        Args:
            providers: Configured providers, in display order
            force: Fetch even if the cache became fresh while waiting for
                the lease
            ttl: Freshness TTL used for that re-check

        Raises:
            RefreshInProgressError: Another process holds the lease and no
                entry exists to serve
            CacheWriteError: The lease cannot be written and no entry exists
                to serve
        """
        try:
            acquired = self.lease.try_acquire()
        except CacheWriteError as e:
            lib_logger.warning(f"Cannot take refresh lease: {e}")
            self.last_write_error = e
            stale = self.load()
            if stale is None:
                raise
            return stale
        if not acquired:
            return self._wait_for_refresh()

        with self.lease.holding():
            previous = self.load()
            if (
                not force
                and ttl is not None
                and previous is not None
                and self.is_fresh(previous, self._clock(), ttl)
            ):
                lib_logger.debug("Cache was refreshed by another process, skipping fetch")
                return previous

            entry = self._fetch_all(providers, previous)
            self._persist(entry)
            return entry

    def _fetch_all(
        self, providers: List[ProviderConfig], previous: Optional[CacheEntry]
    ) -> CacheEntry:
        snapshots: Dict[str, UsageSnapshot] = {}
        failures = 0
        for provider in providers:
            if not provider.enabled:
                continue
            prior = previous.get(provider.name) if previous is not None else None
            try:
                snapshot = clamp_reset(prior, self.client.fetch(provider))
            except ProviderError as e:
                failures += 1
                lib_logger.warning(
                    f"Provider {provider.name} failed ({e.fetch_status.value}): {e.message}"
                )
                snapshot = carry_forward(prior, e)
            snapshots[provider.name] = snapshot

        entry = CacheEntry(providers=snapshots, fetched_at=self._clock())
        lib_logger.info(
            f"Refreshed usage for {len(snapshots)} provider(s), {failures} failed"
        )
        return entry

    def _persist(self, entry: CacheEntry) -> None:
        try:
            self.backend.write_cache(serialize_entry(entry))
            self.last_write_error = None
        except CacheWriteError as e:
            lib_logger.warning(f"Keeping previous cache, write failed: {e}")
            self.last_write_error = e

    def _wait_for_refresh(self) -> CacheEntry:
        """Wait briefly for another holder's refresh, then serve the newest entry."""
        holder = self.lease.current()
        initial = self.load()
        baseline = initial.fetched_at if initial is not None else None

        deadline = self._clock() + self.lease_wait
        while self._clock() < deadline:
            self._sleep(self.poll_interval)
            entry = self.load()
            if entry is not None and (baseline is None or entry.fetched_at > baseline):
                lib_logger.debug("Picked up refresh completed by another process")
                return entry
            if self.lease.current() is None:
                break

        entry = self.load()
        if entry is None:
            if holder is None:
                raise RefreshInProgressError("unknown", self._clock())
            raise RefreshInProgressError(holder.holder, holder.acquired_at)
        lib_logger.debug("Refresh still in progress elsewhere, serving newest entry")
        return entry

    def close(self) -> None:
        """Release the refresh lease if this process holds it."""
        self.lease.release()


def build_store(config: GaugeConfig, client: Optional[ProviderClient] = None) -> UsageCacheStore:
    """Store backed by the configured cache file and the codexbar client."""
    if client is None:
        client = CodexBarClient.from_config(config)
    return UsageCacheStore(
        FileCacheBackend(config.cache_file),
        client,
        lease_stale_after=config.lease_stale_secs,
        lease_wait=config.lease_wait_secs,
    )
