# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
CodexBar Usage Client

Fetches provider usage by running the codexbar CLI once per provider.

Command:
    codexbar usage --provider <name> --source <oauth|api> --format json --json-only

Output (a single object or a list of them):
    {
        "provider": "codex",
        "version": "0.18.0",
        "source": "oauth",
        "usage": {
            "primary": {"usedPercent": 42, "windowMinutes": 300,
                        "resetsAt": "2026-01-23T22:27:08Z", "resetDescription": "in 3h"},
            "secondary": {"used": 1200, "limit": 5000, "windowMinutes": 10080},
            "updatedAt": "2026-01-23T19:27:08Z"
        },
        "credits": {"remaining": 12.5},
        "error": {"message": "...", "code": "..."}
    }

The primary window maps to the daily window and the secondary window to the
weekly one. Windows report either absolute ``used``/``limit`` figures or a
``usedPercent``, which is stored as used out of a limit of 100.
"""

import json
import logging
import os
import re
import subprocess
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ..core.config import GaugeConfig, ProviderConfig
from ..core.constants import DEFAULT_CODEXBAR_BIN, DEFAULT_SOURCE, DEFAULT_TIMEOUT_SECS
from ..core.errors import (
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderParseError,
)
from ..core.types import UsageSnapshot, UsageWindow, WindowUsage
from .base import ProviderClient

lib_logger = logging.getLogger("tokengauge")

# Python < 3.11 only parses 3 or 6 fractional digits
_FRACTION_RE = re.compile(r"\.(\d+)")

# Error wording that points at a credential problem rather than transport
AUTH_ERROR_MARKERS = (
    "auth",
    "unauthorized",
    "forbidden",
    "401",
    "403",
    "token",
    "expired",
    "login",
    "credential",
    "api key",
    "apikey",
)

WINDOW_KEYS = (
    ("primary", UsageWindow.DAILY),
    ("secondary", UsageWindow.WEEKLY),
)


# =============================================================================
# PARSING HELPERS
# =============================================================================


def parse_timestamp(value: Any) -> Optional[float]:
    """
    Parse an ISO-8601 string or epoch number into epoch seconds.

    Naive timestamps are taken as UTC. Returns None for anything else.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if value > 0 else None
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def _number(value: Any, name: str) -> Union[int, float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} is not a number: {value!r}")
    if value < 0:
        raise ValueError(f"{name} is negative: {value!r}")
    return value


def parse_window(data: Any) -> Optional[WindowUsage]:
    """
    Normalize one usage window.

    Returns:
        WindowUsage, or None when the window is absent

    Raises:
        ValueError: If the window has an unexpected shape
    """
    if data is None:
        return None
    if not isinstance(data, dict):
        raise ValueError(f"window is not an object: {data!r}")

    if "used" in data:
        used = _number(data["used"], "used")
        raw_limit = data.get("limit")
        limit = None if raw_limit is None else _number(raw_limit, "limit")
    elif data.get("usedPercent") is not None:
        used = _number(data["usedPercent"], "usedPercent")
        limit = 100
    else:
        raise ValueError("window reports neither 'used' nor 'usedPercent'")

    minutes = data.get("windowMinutes")
    description = data.get("resetDescription")
    return WindowUsage(
        used=used,
        limit=limit,
        reset_at=parse_timestamp(data.get("resetsAt")),
        reset_description=description if isinstance(description, str) else None,
        window_minutes=minutes if isinstance(minutes, int) and not isinstance(minutes, bool) else None,
    )


def parse_payloads(raw: Union[bytes, str]) -> List[Dict[str, Any]]:
    """
    Decode codexbar output into a list of payload objects.

    Raises:
        ValueError: If the output is not JSON or not object(s)
    """
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    value = json.loads(raw)
    if isinstance(value, dict):
        return [value]
    if isinstance(value, list) and all(isinstance(item, dict) for item in value):
        return value
    raise ValueError("codexbar output is neither an object nor a list of objects")


def select_payload(provider: str, payloads: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Pick the payload belonging to ``provider``."""
    for payload in payloads:
        if payload.get("provider") == provider:
            return payload
    # Single-provider invocations may omit the provider field
    if len(payloads) == 1 and not payloads[0].get("provider"):
        return payloads[0]
    raise ProviderParseError(provider, "codexbar output has no payload for this provider")


def payload_error(payload: Dict[str, Any]) -> Optional[Dict[str, Optional[str]]]:
    """Return ``{"message", "code"}`` if the payload reports an error."""
    error = payload.get("error")
    if not error:
        return None
    if isinstance(error, str):
        return {"message": error, "code": None}
    if isinstance(error, dict):
        message = error.get("message") or error.get("description") or "unknown error"
        code = error.get("code")
        return {"message": str(message), "code": str(code) if code is not None else None}
    return {"message": str(error), "code": None}


def classify_error(provider: str, message: str, code: Optional[str] = None) -> ProviderError:
    """Map a tool-reported error to the provider error taxonomy."""
    haystack = f"{code or ''} {message}".lower()
    if any(marker in haystack for marker in AUTH_ERROR_MARKERS):
        return ProviderAuthError(provider, message)
    return ProviderNetworkError(provider, message)


def snapshot_from_payload(provider: str, payload: Dict[str, Any]) -> UsageSnapshot:
    """
    Convert one codexbar payload into a UsageSnapshot.

    Raises:
        ProviderAuthError / ProviderNetworkError: Payload reports an error
        ProviderParseError: Payload has an unexpected shape
    """
    error = payload_error(payload)
    if error:
        raise classify_error(provider, error["message"], error["code"])

    usage = payload.get("usage")
    if not isinstance(usage, dict):
        raise ProviderParseError(provider, "payload has no usage object")

    try:
        windows = {}
        for key, window in WINDOW_KEYS:
            parsed = parse_window(usage.get(key))
            if parsed is not None:
                windows[window] = parsed
    except ValueError as e:
        raise ProviderParseError(provider, str(e)) from e

    if not windows:
        raise ProviderParseError(provider, "payload reports no usage windows")

    headline_window = UsageWindow.DAILY if UsageWindow.DAILY in windows else UsageWindow.WEEKLY
    headline = windows.pop(headline_window)

    credits = payload.get("credits")
    remaining = credits.get("remaining") if isinstance(credits, dict) else None
    source = payload.get("source")
    version = payload.get("version")

    return UsageSnapshot(
        used=headline.used,
        limit=headline.limit,
        window=headline_window,
        reset_at=headline.reset_at,
        reset_description=headline.reset_description,
        window_minutes=headline.window_minutes,
        windows={window.value: figures for window, figures in windows.items()},
        credits_remaining=(
            float(remaining)
            if isinstance(remaining, (int, float)) and not isinstance(remaining, bool)
            else None
        ),
        source=source if isinstance(source, str) else None,
        version=version if isinstance(version, str) else None,
        updated_at=parse_timestamp(usage.get("updatedAt")),
    )


# =============================================================================
# CLIENT
# =============================================================================


class CodexBarClient(ProviderClient):
    """
    Provider client backed by the codexbar CLI.

    Each fetch runs one subprocess bounded by ``timeout`` seconds. There is
    no retry and no way to cancel a running invocation besides process exit.
    """

    def __init__(
        self,
        binary: str = DEFAULT_CODEXBAR_BIN,
        source: str = DEFAULT_SOURCE,
        timeout: float = DEFAULT_TIMEOUT_SECS,
    ):
        self.binary = binary
        self.source = source
        self.timeout = timeout

    @classmethod
    def from_config(cls, config: GaugeConfig) -> "CodexBarClient":
        return cls(
            binary=config.codexbar_bin,
            source=config.source,
            timeout=config.timeout_secs,
        )

    def build_command(self, provider: ProviderConfig) -> List[str]:
        source = "api" if provider.kind == "api" else self.source
        return [
            self.binary,
            "usage",
            "--provider",
            provider.name,
            "--source",
            source,
            "--format",
            "json",
            "--json-only",
        ]

    def _build_env(self, provider: ProviderConfig) -> Optional[Dict[str, str]]:
        """Child environment; API-key providers get their key injected."""
        if provider.kind != "api":
            return None
        api_key = provider.resolve_api_key()
        if not api_key:
            reference = provider.env_var or "api_key"
            raise ProviderAuthError(provider.name, f"API key not set ({reference})")
        env = dict(os.environ)
        env[provider.env_var or f"{provider.name.upper()}_API_KEY"] = api_key
        return env

    def _fetch(self, provider: ProviderConfig) -> UsageSnapshot:
        env = self._build_env(provider)
        command = self.build_command(provider)

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                timeout=self.timeout,
                env=env,
                check=False,
            )
        except subprocess.TimeoutExpired:
            raise ProviderNetworkError(
                provider.name, f"{self.binary} timed out after {self.timeout:g}s"
            ) from None
        except OSError as e:
            raise ProviderNetworkError(
                provider.name, f"failed to run {self.binary}: {e}"
            ) from e

        if result.returncode != 0:
            raise self._failure_from_output(provider.name, result)

        try:
            payloads = parse_payloads(result.stdout)
        except ValueError as e:
            raise ProviderParseError(provider.name, f"codexbar output was not valid JSON: {e}") from e

        snapshot = snapshot_from_payload(provider.name, select_payload(provider.name, payloads))
        lib_logger.debug(
            f"codexbar {provider.name}: {snapshot.used}/{snapshot.limit} ({snapshot.window.value})"
        )
        return snapshot

    def _failure_from_output(
        self, provider: str, result: "subprocess.CompletedProcess[bytes]"
    ) -> ProviderError:
        """
        Build the error for a non-zero exit.

        codexbar still prints a JSON payload with an ``error`` object for
        provider-level failures; that message decides auth vs network.
        Anything else is a transport failure.
        """
        stdout = (result.stdout or b"").decode("utf-8", errors="replace").strip()
        stderr = (result.stderr or b"").decode("utf-8", errors="replace").strip()

        if stdout:
            try:
                payloads = parse_payloads(stdout)
            except ValueError:
                payloads = []
            for payload in payloads:
                if payload.get("provider") not in (None, provider):
                    continue
                error = payload_error(payload)
                if error:
                    return classify_error(provider, error["message"], error["code"])

        detail = stderr or stdout or "no error output"
        return ProviderNetworkError(
            provider, f"codexbar failed (exit {result.returncode}) - {detail}"
        )
