# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import unittest

from tokengauge_core.core.config import ProviderConfig
from tokengauge_core.core.errors import (
    CacheWriteError,
    ProviderAuthError,
    ProviderNetworkError,
    RefreshInProgressError,
)
from tokengauge_core.core.types import CacheEntry, FetchStatus, UsageWindow, WindowUsage
from tokengauge_core.providers.scripted import ScriptedProviderClient
from tokengauge_core.usage.lease import LeaseRecord
from tokengauge_core.usage.manager import UsageCacheStore
from tokengauge_core.usage.storage import MemoryCacheBackend, deserialize_entry, serialize_entry

from support import FakeClock, make_config, make_store, snapshot


def backend_with(entry: CacheEntry) -> MemoryCacheBackend:
    return MemoryCacheBackend(serialize_entry(entry))


class ReadOnlyLeaseBackend(MemoryCacheBackend):
    """Backend whose lease marker cannot be written."""

    def create_marker(self, text: str) -> bool:
        raise CacheWriteError("failed to create lease: read-only file system")


class FreshnessTest(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.config = make_config("codex", "claude")
        self.client = ScriptedProviderClient({"codex": snapshot(10), "claude": snapshot(20)})

    def test_fresh_entry_is_served_without_fetching(self) -> None:
        cached = CacheEntry(providers={"codex": snapshot(5)}, fetched_at=self.clock.now - 300)
        store = make_store(self.client, self.clock, backend_with(cached))

        entry = store.get_or_refresh(self.config.providers, ttl=600)

        self.assertEqual(entry, cached)
        self.assertEqual(self.client.calls, [])

    def test_stale_entry_is_refreshed_once_per_provider(self) -> None:
        cached = CacheEntry(providers={"codex": snapshot(5)}, fetched_at=self.clock.now - 900)
        backend = backend_with(cached)
        store = make_store(self.client, self.clock, backend)

        entry = store.get_or_refresh(self.config.providers, ttl=600)

        self.assertEqual(self.client.calls, ["codex", "claude"])
        self.assertEqual(entry.fetched_at, self.clock.now)
        self.assertEqual(deserialize_entry(backend.text), entry)
        self.assertIsNone(backend.marker)

    def test_absent_cache_fetches_synchronously(self) -> None:
        store = make_store(self.client, self.clock)
        self.assertIsNone(store.load())

        entry = store.get_or_refresh(self.config.providers, ttl=300)
        self.assertEqual(list(entry.providers), ["codex", "claude"])

    def test_corrupt_cache_is_treated_as_absent(self) -> None:
        store = make_store(self.client, self.clock, MemoryCacheBackend("{broken"))

        with self.assertLogs("tokengauge", level="WARNING"):
            self.assertIsNone(store.load())
        entry = store.get_or_refresh(self.config.providers, ttl=300)
        self.assertEqual(entry.get("codex").used, 10)

    def test_is_fresh_boundary(self) -> None:
        cached = CacheEntry(fetched_at=100.0)
        self.assertTrue(UsageCacheStore.is_fresh(cached, 399.0, 300))
        self.assertFalse(UsageCacheStore.is_fresh(cached, 400.0, 300))

    def test_unforced_refresh_rechecks_freshness(self) -> None:
        cached = CacheEntry(providers={"codex": snapshot(5)}, fetched_at=self.clock.now - 10)
        store = make_store(self.client, self.clock, backend_with(cached))

        self.assertEqual(store.refresh(self.config.providers, ttl=300), cached)
        self.assertEqual(self.client.calls, [])

        store.refresh(self.config.providers, force=True, ttl=300)
        self.assertEqual(self.client.calls, ["codex", "claude"])


class FailureIsolationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.config = make_config("codex", "claude")

    def test_failing_provider_keeps_last_known_figures(self) -> None:
        previous = CacheEntry(
            providers={"codex": snapshot(50), "claude": snapshot(20, reset_at=self.clock.now + 60)},
            fetched_at=self.clock.now - 900,
        )
        client = ScriptedProviderClient(
            {"codex": snapshot(60), "claude": ProviderNetworkError("claude", "timed out")}
        )
        store = make_store(client, self.clock, backend_with(previous))

        entry = store.refresh(self.config.providers)

        codex, claude = entry.get("codex"), entry.get("claude")
        self.assertEqual((codex.used, codex.fetch_status), (60, FetchStatus.OK))
        self.assertEqual(claude.used, 20)
        self.assertEqual(claude.reset_at, self.clock.now + 60)
        self.assertEqual(claude.fetch_status, FetchStatus.NETWORK_ERROR)
        self.assertEqual(claude.error_message, "timed out")
        self.assertEqual(entry.fetched_at, self.clock.now)

    def test_failure_without_history_records_placeholder(self) -> None:
        client = ScriptedProviderClient(
            {"codex": snapshot(60), "claude": ProviderAuthError("claude", "token expired")}
        )
        store = make_store(client, self.clock)

        entry = store.refresh(self.config.providers)

        claude = entry.get("claude")
        self.assertFalse(claude.has_data)
        self.assertEqual(claude.fetch_status, FetchStatus.AUTH_ERROR)
        self.assertTrue(entry.get("codex").is_ok)

    def test_all_providers_failing_still_writes_entry(self) -> None:
        backend = MemoryCacheBackend()
        store = make_store(ScriptedProviderClient(), self.clock, backend)

        entry = store.refresh(self.config.providers)

        self.assertEqual(backend.writes, 1)
        self.assertTrue(all(not s.is_ok for s in entry.providers.values()))

    def test_disabled_provider_is_skipped(self) -> None:
        client = ScriptedProviderClient({"codex": snapshot(1), "claude": snapshot(2)})
        store = make_store(client, self.clock)
        providers = [ProviderConfig("codex", enabled=False), ProviderConfig("claude")]

        entry = store.refresh(providers)

        self.assertEqual(list(entry.providers), ["claude"])
        self.assertEqual(client.calls, ["claude"])

    def test_reset_time_never_moves_backwards(self) -> None:
        weekly_prev = WindowUsage(used=1, limit=10, reset_at=self.clock.now + 7200)
        weekly_new = WindowUsage(used=2, limit=10, reset_at=self.clock.now + 7000)
        previous = CacheEntry(
            providers={"codex": snapshot(5, reset_at=self.clock.now + 3600, weekly=weekly_prev)},
            fetched_at=self.clock.now - 900,
        )
        client = ScriptedProviderClient(
            {"codex": [
                snapshot(6, reset_at=self.clock.now + 3500, weekly=weekly_new),
                snapshot(7, reset_at=self.clock.now + 9000),
            ]}
        )
        store = make_store(client, self.clock, backend_with(previous))
        providers = [ProviderConfig("codex")]

        codex = store.refresh(providers).get("codex")
        self.assertEqual(codex.used, 6)
        self.assertEqual(codex.reset_at, self.clock.now + 3600)
        self.assertEqual(codex.window_usage(UsageWindow.WEEKLY).reset_at, self.clock.now + 7200)

        codex = store.refresh(providers).get("codex")
        self.assertEqual(codex.reset_at, self.clock.now + 9000)

    def test_unwritable_lease_serves_stale_entry(self) -> None:
        stale = CacheEntry(providers={"codex": snapshot(5)}, fetched_at=self.clock.now - 900)
        client = ScriptedProviderClient({"codex": snapshot(9)})
        store = make_store(client, self.clock, ReadOnlyLeaseBackend(serialize_entry(stale)))

        with self.assertLogs("tokengauge", level="WARNING"):
            entry = store.get_or_refresh([ProviderConfig("codex")], ttl=600)

        self.assertEqual(entry, stale)
        self.assertEqual(client.calls, [])
        self.assertIsInstance(store.last_write_error, CacheWriteError)

    def test_unwritable_lease_without_entry_raises(self) -> None:
        store = make_store(ScriptedProviderClient(), self.clock, ReadOnlyLeaseBackend())

        with self.assertLogs("tokengauge", level="WARNING"):
            with self.assertRaises(CacheWriteError):
                store.get_or_refresh([ProviderConfig("codex")], ttl=600)

    def test_write_failure_is_reported_and_entry_returned(self) -> None:
        previous = CacheEntry(providers={"codex": snapshot(5)}, fetched_at=self.clock.now - 900)
        backend = backend_with(previous)
        backend.write_error = OSError("read-only file system")
        store = make_store(ScriptedProviderClient({"codex": snapshot(9)}), self.clock, backend)

        with self.assertLogs("tokengauge", level="WARNING"):
            entry = store.refresh([ProviderConfig("codex")])

        self.assertEqual(entry.get("codex").used, 9)
        self.assertIsInstance(store.last_write_error, CacheWriteError)
        self.assertEqual(deserialize_entry(backend.text), previous)


class RefreshArbitrationTest(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = FakeClock()
        self.config = make_config("codex", "claude")
        self.script = {"codex": snapshot(10), "claude": snapshot(20)}

    def test_concurrent_refresh_does_not_duplicate_fetches(self) -> None:
        stale = CacheEntry(providers={"codex": snapshot(1)}, fetched_at=self.clock.now - 900)
        backend = backend_with(stale)
        client_a = ScriptedProviderClient(self.script)
        client_b = ScriptedProviderClient(self.script)
        store_a = make_store(client_a, self.clock, backend, holder="a")
        store_b = make_store(client_b, self.clock, backend, holder="b")

        served_to_b = []

        def second_process_polls(provider: ProviderConfig) -> None:
            if not served_to_b:
                served_to_b.append(store_b.get_or_refresh(self.config.providers, ttl=300))

        client_a.on_fetch = second_process_polls
        entry_a = store_a.get_or_refresh(self.config.providers, ttl=300)

        self.assertEqual(client_a.calls, ["codex", "claude"])
        self.assertEqual(client_b.calls, [])
        self.assertEqual(served_to_b[0], stale)

        # Once A's entry has landed, B sees it as fresh
        self.assertEqual(store_b.get_or_refresh(self.config.providers, ttl=300), entry_a)
        self.assertEqual(client_b.calls, [])

    def test_waiting_process_picks_up_landed_refresh(self) -> None:
        backend = MemoryCacheBackend()
        backend.marker = LeaseRecord("other", self.clock.now).to_text()
        landed = CacheEntry(providers={"codex": snapshot(33)}, fetched_at=self.clock.now)

        def other_process_finishes(seconds: float) -> None:
            self.clock.advance(seconds)
            backend.text = serialize_entry(landed)
            backend.marker = None

        client = ScriptedProviderClient(self.script)
        store = UsageCacheStore(
            backend, client, clock=self.clock, sleep=other_process_finishes, lease_stale_after=60
        )

        self.assertEqual(store.get_or_refresh(self.config.providers, ttl=300), landed)
        self.assertEqual(client.calls, [])

    def test_in_progress_without_entry_raises(self) -> None:
        backend = MemoryCacheBackend()
        backend.marker = LeaseRecord("other", self.clock.now).to_text()
        client = ScriptedProviderClient(self.script)
        store = make_store(client, self.clock, backend, lease_wait=1.0)
        start = self.clock.now

        with self.assertRaises(RefreshInProgressError) as ctx:
            store.get_or_refresh(self.config.providers, ttl=300)

        self.assertEqual(ctx.exception.holder, "other")
        self.assertEqual(client.calls, [])
        self.assertGreaterEqual(self.clock.now - start, 1.0)

    def test_abandoned_lease_is_overridden(self) -> None:
        backend = MemoryCacheBackend()
        backend.marker = LeaseRecord("crashed", self.clock.now - 61).to_text()
        client = ScriptedProviderClient(self.script)
        store = make_store(client, self.clock, backend, lease_stale_after=60)

        entry = store.get_or_refresh(self.config.providers, ttl=300)

        self.assertEqual(client.calls, ["codex", "claude"])
        self.assertEqual(entry.get("claude").used, 20)
        self.assertIsNone(backend.marker)

    def test_lease_released_when_refresh_raises(self) -> None:
        backend = MemoryCacheBackend()
        client = ScriptedProviderClient(self.script)

        def explode(provider: ProviderConfig) -> None:
            raise RuntimeError("unexpected")

        client.on_fetch = explode
        store = make_store(client, self.clock, backend)

        with self.assertRaises(RuntimeError):
            store.refresh(self.config.providers)
        self.assertIsNone(backend.marker)

    def test_close_releases_held_lease(self) -> None:
        backend = MemoryCacheBackend()
        store = make_store(ScriptedProviderClient(self.script), self.clock, backend, holder="me")
        self.assertTrue(store.lease.try_acquire())

        store.close()
        self.assertIsNone(backend.marker)


if __name__ == "__main__":
    unittest.main()
