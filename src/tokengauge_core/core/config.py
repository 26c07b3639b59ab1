# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Configuration loading for TokenGauge.

The core only ever reads an already-parsed GaugeConfig. This module is the
loader both entry points use to build one from:
1. Built-in defaults (core/constants.py)
2. A TOML config file (created with defaults when missing)
3. Environment variables, which ALWAYS override the file
4. A .env file next to the config file, consulted for API keys referenced
   by a provider's ``env_var``
"""

import logging
import os
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from dotenv import load_dotenv

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

from .constants import (
    DEFAULT_CACHE_FILE,
    DEFAULT_CODEXBAR_BIN,
    DEFAULT_CRITICAL_THRESHOLD,
    DEFAULT_LEASE_WAIT_SECS,
    DEFAULT_PROVIDERS,
    DEFAULT_REFRESH_SECS,
    DEFAULT_SOURCE,
    DEFAULT_TIMEOUT_SECS,
    DEFAULT_WARNING_THRESHOLD,
    DEFAULT_WINDOW,
    ENV_CACHE_FILE,
    ENV_CONFIG_PATH,
    ENV_REFRESH_SECS,
    LEASE_STALE_MULTIPLIER,
)
from .errors import ConfigError
from .types import UsageWindow

lib_logger = logging.getLogger("tokengauge")

PROVIDER_KINDS = ("oauth", "api")


class DegradedDisplay(str, Enum):
    """How a carried-forward snapshot counts in percentage displays."""

    LAST_KNOWN = "last_known"  # Keep counting the last-known figures, flagged
    UNKNOWN = "unknown"  # Show as N/A until the provider recovers


# =============================================================================
# CONFIG TYPES
# =============================================================================


@dataclass
class ProviderConfig:
    """
    Configuration for one usage source.

    ``kind`` selects how the usage tool authenticates: "oauth" reuses the
    provider's own login, "api" needs a key given literally (``api_key``)
    or by reference (``env_var``).
    """

    name: str
    enabled: bool = True
    kind: str = "oauth"
    api_key: Optional[str] = None
    env_var: Optional[str] = None
    label: Optional[str] = None  # display override

    def resolve_api_key(self) -> Optional[str]:
        """Return the API key, reading the referenced env var if needed."""
        if self.api_key:
            return self.api_key
        if self.env_var:
            value = os.environ.get(self.env_var, "").strip()
            return value or None
        return None


@dataclass
class Thresholds:
    """Severity thresholds as percent used."""

    warning: float = DEFAULT_WARNING_THRESHOLD
    critical: float = DEFAULT_CRITICAL_THRESHOLD


@dataclass
class GaugeConfig:
    """Parsed configuration consumed by the core and the entry points."""

    codexbar_bin: str = DEFAULT_CODEXBAR_BIN
    source: str = DEFAULT_SOURCE
    refresh_secs: int = DEFAULT_REFRESH_SECS
    timeout_secs: float = DEFAULT_TIMEOUT_SECS
    cache_file: Path = field(default_factory=lambda: Path(DEFAULT_CACHE_FILE))
    window: UsageWindow = UsageWindow(DEFAULT_WINDOW)
    lease_wait_secs: float = DEFAULT_LEASE_WAIT_SECS
    thresholds: Thresholds = field(default_factory=Thresholds)
    degraded_display: DegradedDisplay = DegradedDisplay.LAST_KNOWN
    providers: List[ProviderConfig] = field(
        default_factory=lambda: [ProviderConfig(name) for name in DEFAULT_PROVIDERS]
    )

    @property
    def enabled_providers(self) -> List[ProviderConfig]:
        return [p for p in self.providers if p.enabled]

    @property
    def provider_order(self) -> List[str]:
        """Provider ids in configuration order (enabled only)."""
        return [p.name for p in self.enabled_providers]

    @property
    def lease_stale_secs(self) -> float:
        """Age after which another process's refresh lease is abandoned."""
        count = max(len(self.enabled_providers), 1)
        return self.timeout_secs * LEASE_STALE_MULTIPLIER * count

    def get_provider(self, name: str) -> Optional[ProviderConfig]:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None


# =============================================================================
# PATHS
# =============================================================================


def default_config_path() -> Path:
    """$XDG_CONFIG_HOME/tokengauge/config.toml (or ~/.config/...)."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    base = Path(config_home) if config_home else Path.home() / ".config"
    return base / "tokengauge" / "config.toml"


def resolve_config_path(path: Optional[Path] = None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(ENV_CONFIG_PATH)
    if env_path:
        return Path(env_path)
    return default_config_path()


_DEFAULT_PROVIDER_LINES = "\n".join(f"{name} = true" for name in DEFAULT_PROVIDERS)

DEFAULT_CONFIG_TEMPLATE = f"""\
codexbar_bin = "{DEFAULT_CODEXBAR_BIN}"
source = "{DEFAULT_SOURCE}"
refresh_secs = {DEFAULT_REFRESH_SECS}
cache_file = "{DEFAULT_CACHE_FILE}"

[providers]
{_DEFAULT_PROVIDER_LINES}

[waybar]
window = "{DEFAULT_WINDOW}"
"""


def write_default_config(path: Path) -> None:
    """Create a config file holding the defaults."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(DEFAULT_CONFIG_TEMPLATE)
    except OSError as e:
        raise ConfigError(f"failed to write config {path}: {e}") from e
    lib_logger.info(f"Wrote default config to {path}")


# =============================================================================
# PARSING
# =============================================================================


def _positive_number(data: Dict[str, Any], key: str, default: float) -> float:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
        raise ConfigError(f"'{key}' must be a positive number, got {value!r}")
    return value


def _parse_provider(name: str, data: Any) -> ProviderConfig:
    # Short form: codex = true
    if isinstance(data, bool):
        return ProviderConfig(name=name, enabled=data)
    if not isinstance(data, dict):
        raise ConfigError(f"provider '{name}' must be a table or a boolean")

    kind = data.get("kind", "oauth")
    if kind not in PROVIDER_KINDS:
        raise ConfigError(
            f"provider '{name}' has unknown kind {kind!r} (expected one of {PROVIDER_KINDS})"
        )
    provider = ProviderConfig(
        name=name,
        enabled=bool(data.get("enabled", True)),
        kind=kind,
        api_key=data.get("api_key") or None,
        env_var=data.get("env_var") or None,
        label=data.get("label") or None,
    )
    if provider.kind == "api" and not (provider.api_key or provider.env_var):
        raise ConfigError(
            f"provider '{name}' uses an API key but sets neither 'api_key' nor 'env_var'"
        )
    return provider


def _parse_providers(raw: Any) -> List[ProviderConfig]:
    items: List[Tuple[str, Any]] = []
    if isinstance(raw, dict):
        items = list(raw.items())
    elif isinstance(raw, list):
        for entry in raw:
            if not isinstance(entry, dict) or not entry.get("name"):
                raise ConfigError("every entry in 'providers' needs a 'name'")
            items.append((str(entry["name"]), entry))
    else:
        raise ConfigError("'providers' must be a table or an array of tables")

    providers: List[ProviderConfig] = []
    seen = set()
    for name, data in items:
        if name in seen:
            raise ConfigError(f"provider '{name}' is listed twice")
        seen.add(name)
        providers.append(_parse_provider(name, data))
    return providers


def parse_config(data: Dict[str, Any]) -> GaugeConfig:
    """
    Build a GaugeConfig from a parsed config table.

    Args:
        data: Decoded config file contents

    Returns:
        Validated GaugeConfig

    Raises:
        ConfigError: If a value is malformed
    """
    if not isinstance(data, dict):
        raise ConfigError("config root must be a table")

    config = GaugeConfig()

    # Empty strings fall back to defaults
    config.codexbar_bin = data.get("codexbar_bin") or DEFAULT_CODEXBAR_BIN
    config.source = data.get("source") or DEFAULT_SOURCE
    config.refresh_secs = int(_positive_number(data, "refresh_secs", DEFAULT_REFRESH_SECS))
    config.timeout_secs = float(_positive_number(data, "timeout_secs", DEFAULT_TIMEOUT_SECS))
    config.cache_file = Path(data.get("cache_file") or DEFAULT_CACHE_FILE).expanduser()

    lease_wait = data.get("lease_wait_secs", DEFAULT_LEASE_WAIT_SECS)
    if isinstance(lease_wait, bool) or not isinstance(lease_wait, (int, float)) or lease_wait < 0:
        raise ConfigError(f"'lease_wait_secs' must be zero or more, got {lease_wait!r}")
    config.lease_wait_secs = float(lease_wait)

    waybar = data.get("waybar") or {}
    if not isinstance(waybar, dict):
        raise ConfigError("'waybar' must be a table")
    # [waybar] window, or a top-level window key
    window = waybar.get("window") or data.get("window") or DEFAULT_WINDOW
    try:
        config.window = UsageWindow(window)
    except ValueError:
        raise ConfigError(f"'window' must be 'daily' or 'weekly', got {window!r}") from None

    try:
        config.degraded_display = DegradedDisplay(
            data.get("degraded_display") or DegradedDisplay.LAST_KNOWN.value
        )
    except ValueError:
        raise ConfigError(
            f"'degraded_display' must be 'last_known' or 'unknown', "
            f"got {data.get('degraded_display')!r}"
        ) from None

    thresholds = data.get("thresholds") or {}
    if not isinstance(thresholds, dict):
        raise ConfigError("'thresholds' must be a table")
    warning = _positive_number(thresholds, "warning", DEFAULT_WARNING_THRESHOLD)
    critical = _positive_number(thresholds, "critical", DEFAULT_CRITICAL_THRESHOLD)
    if not warning < critical <= 100:
        raise ConfigError(
            f"thresholds must satisfy warning < critical <= 100, got {warning}/{critical}"
        )
    config.thresholds = Thresholds(warning=float(warning), critical=float(critical))

    if "providers" in data:
        config.providers = _parse_providers(data["providers"])

    return config


def _apply_env_overrides(config: GaugeConfig) -> None:
    cache_file = os.environ.get(ENV_CACHE_FILE)
    if cache_file:
        config.cache_file = Path(cache_file).expanduser()

    refresh = os.environ.get(ENV_REFRESH_SECS)
    if refresh:
        try:
            value = int(refresh)
        except ValueError:
            raise ConfigError(f"{ENV_REFRESH_SECS} must be an integer, got {refresh!r}") from None
        if value <= 0:
            raise ConfigError(f"{ENV_REFRESH_SECS} must be positive, got {value}")
        config.refresh_secs = value


def load_config(path: Optional[Path] = None, create: bool = True) -> GaugeConfig:
    """
    Load configuration from disk.

    Args:
        path: Explicit config path; falls back to $TOKENGAUGE_CONFIG and
            then the XDG default
        create: Write a default config when the file does not exist

    Returns:
        Parsed GaugeConfig

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    config_path = resolve_config_path(path)

    if not config_path.exists():
        if not create:
            raise ConfigError(f"config file not found: {config_path}")
        write_default_config(config_path)

    # API keys referenced by env_var may live next to the config
    env_file = config_path.parent / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"failed to parse config at {config_path}: {e}") from e
    except OSError as e:
        raise ConfigError(f"failed to read config at {config_path}: {e}") from e

    config = parse_config(data)
    _apply_env_overrides(config)
    lib_logger.debug(
        f"Loaded config from {config_path}: "
        f"{len(config.enabled_providers)} enabled provider(s), ttl={config.refresh_secs}s"
    )
    return config
