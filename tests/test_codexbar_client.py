# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import json
import os
import subprocess
import unittest
from datetime import datetime, timezone
from unittest import mock

from tokengauge_core.core.config import ProviderConfig
from tokengauge_core.core.errors import (
    ProviderAuthError,
    ProviderNetworkError,
    ProviderNotConfiguredError,
    ProviderParseError,
)
from tokengauge_core.core.types import FetchStatus, UsageWindow
from tokengauge_core.providers.codexbar_client import CodexBarClient, parse_timestamp

RUN = "tokengauge_core.providers.codexbar_client.subprocess.run"


def completed(stdout, returncode: int = 0, stderr: bytes = b"") -> subprocess.CompletedProcess:
    if not isinstance(stdout, bytes):
        stdout = json.dumps(stdout).encode("utf-8")
    return subprocess.CompletedProcess(args=["codexbar"], returncode=returncode, stdout=stdout, stderr=stderr)


CODEX_PAYLOAD = {
    "provider": "codex",
    "version": "0.18.0",
    "source": "oauth",
    "usage": {
        "primary": {
            "usedPercent": 42,
            "windowMinutes": 300,
            "resetsAt": "2026-01-23T22:27:08Z",
            "resetDescription": "in 3h",
        },
        "secondary": {"used": 1200, "limit": 5000, "windowMinutes": 10080},
        "updatedAt": "2026-01-23T19:27:08Z",
    },
    "credits": {"remaining": 12.5},
}


class CodexBarClientTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = CodexBarClient(binary="codexbar", source="oauth", timeout=5)
        self.codex = ProviderConfig("codex")

    def test_build_command(self) -> None:
        self.assertEqual(
            self.client.build_command(self.codex),
            [
                "codexbar", "usage", "--provider", "codex", "--source", "oauth",
                "--format", "json", "--json-only",
            ],
        )

    def test_parses_payload_into_snapshot(self) -> None:
        with mock.patch(RUN, return_value=completed([CODEX_PAYLOAD])) as run:
            snap = self.client.fetch(self.codex)

        self.assertEqual(run.call_args.kwargs["timeout"], 5)
        self.assertEqual(snap.fetch_status, FetchStatus.OK)
        self.assertEqual((snap.used, snap.limit), (42, 100))
        self.assertEqual(snap.window, UsageWindow.DAILY)
        self.assertEqual(snap.window_minutes, 300)
        self.assertEqual(snap.reset_description, "in 3h")
        self.assertEqual(
            snap.reset_at, datetime(2026, 1, 23, 22, 27, 8, tzinfo=timezone.utc).timestamp()
        )
        weekly = snap.window_usage(UsageWindow.WEEKLY)
        self.assertEqual((weekly.used, weekly.limit), (1200, 5000))
        self.assertEqual(snap.credits_remaining, 12.5)
        self.assertEqual(snap.version, "0.18.0")

    def test_weekly_only_payload_uses_weekly_headline(self) -> None:
        payload = {"provider": "codex", "usage": {"secondary": {"usedPercent": 7}}}
        with mock.patch(RUN, return_value=completed(payload)):
            snap = self.client.fetch(self.codex)
        self.assertEqual(snap.window, UsageWindow.WEEKLY)
        self.assertEqual(snap.used, 7)

    def test_error_payload_with_auth_wording(self) -> None:
        payload = {"provider": "codex", "error": {"message": "OAuth token expired, run login"}}
        with mock.patch(RUN, return_value=completed(payload)):
            with self.assertRaises(ProviderAuthError) as ctx:
                self.client.fetch(self.codex)
        self.assertEqual(ctx.exception.fetch_status, FetchStatus.AUTH_ERROR)

    def test_nonzero_exit_is_network_error(self) -> None:
        result = completed(b"", returncode=2, stderr=b"connection reset by peer")
        with mock.patch(RUN, return_value=result):
            with self.assertRaises(ProviderNetworkError) as ctx:
                self.client.fetch(self.codex)
        self.assertIn("connection reset", ctx.exception.message)

    def test_nonzero_exit_mentioning_auth_host_is_network_error(self) -> None:
        stderr = b"could not connect to auth.openai.com: network is unreachable"
        with mock.patch(RUN, return_value=completed(b"", returncode=1, stderr=stderr)):
            with self.assertRaises(ProviderNetworkError) as ctx:
                self.client.fetch(self.codex)
        self.assertEqual(ctx.exception.fetch_status, FetchStatus.NETWORK_ERROR)
        self.assertIn("auth.openai.com", ctx.exception.message)

    def test_nonzero_exit_with_error_payload_is_classified(self) -> None:
        payload = {"provider": "codex", "error": {"message": "HTTP 401 Unauthorized"}}
        with mock.patch(RUN, return_value=completed(payload, returncode=1)):
            with self.assertRaises(ProviderAuthError):
                self.client.fetch(self.codex)

    def test_timeout_is_network_error(self) -> None:
        with mock.patch(RUN, side_effect=subprocess.TimeoutExpired(cmd="codexbar", timeout=5)):
            with self.assertRaises(ProviderNetworkError):
                self.client.fetch(self.codex)

    def test_missing_binary_is_network_error(self) -> None:
        with mock.patch(RUN, side_effect=FileNotFoundError("codexbar")):
            with self.assertRaises(ProviderNetworkError):
                self.client.fetch(self.codex)

    def test_unexpected_output_is_parse_error(self) -> None:
        for stdout in (b"not json", b"42", {"provider": "codex"}, {"provider": "codex", "usage": {"primary": {}}}):
            with self.subTest(stdout=stdout):
                with mock.patch(RUN, return_value=completed(stdout)):
                    with self.assertRaises(ProviderParseError):
                        self.client.fetch(self.codex)

    def test_payload_for_other_provider_is_parse_error(self) -> None:
        with mock.patch(RUN, return_value=completed([{"provider": "claude", "usage": {}}])):
            with self.assertRaises(ProviderParseError):
                self.client.fetch(self.codex)

    def test_disabled_provider_never_invokes_tool(self) -> None:
        with mock.patch(RUN) as run:
            with self.assertRaises(ProviderNotConfiguredError):
                self.client.fetch(ProviderConfig("codex", enabled=False))
        run.assert_not_called()

    def test_api_provider_without_key_never_invokes_tool(self) -> None:
        provider = ProviderConfig("zai", kind="api", env_var="TG_TEST_MISSING_KEY")
        with mock.patch.dict(os.environ, {"TG_TEST_MISSING_KEY": ""}), mock.patch(RUN) as run:
            with self.assertRaises(ProviderAuthError):
                self.client.fetch(provider)
        run.assert_not_called()

    def test_api_key_injected_into_child_environment(self) -> None:
        provider = ProviderConfig("zai", kind="api", api_key="zai-secret")
        payload = {"provider": "zai", "usage": {"primary": {"used": 3, "limit": 10}}}
        with mock.patch(RUN, return_value=completed(payload)) as run:
            snap = self.client.fetch(provider)

        self.assertEqual(snap.used, 3)
        self.assertEqual(run.call_args.kwargs["env"]["ZAI_API_KEY"], "zai-secret")
        self.assertIn("api", run.call_args.args[0])


class ParseTimestampTest(unittest.TestCase):
    def test_formats(self) -> None:
        expected = datetime(2026, 1, 23, 22, 27, 8, tzinfo=timezone.utc).timestamp()
        self.assertEqual(parse_timestamp("2026-01-23T22:27:08Z"), expected)
        self.assertEqual(parse_timestamp("2026-01-23T22:27:08"), expected)
        self.assertEqual(parse_timestamp(expected), expected)
        self.assertIsNone(parse_timestamp("soon"))
        self.assertIsNone(parse_timestamp(True))
        self.assertIsNone(parse_timestamp(None))

    def test_fractional_seconds_of_any_precision(self) -> None:
        base = datetime(2026, 1, 23, 22, 27, 8, tzinfo=timezone.utc).timestamp()
        for text, fraction in (
            ("2026-01-23T22:27:08.12Z", 0.12),
            ("2026-01-23T22:27:08.5+00:00", 0.5),
            ("2026-01-23T22:27:08.123456789Z", 0.123456),
        ):
            with self.subTest(text=text):
                self.assertAlmostEqual(parse_timestamp(text), base + fraction, places=5)


if __name__ == "__main__":
    unittest.main()
