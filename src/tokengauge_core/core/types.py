# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Shared type definitions for TokenGauge.

This module contains the dataclasses and enums used across the provider
client, the usage cache store and both display surfaces. Everything that is
persisted in the cache file knows how to convert itself to and from plain
JSON-compatible dictionaries.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional, Union

# Stable identifier for a usage source ("codex", "claude", "zai", ...)
ProviderId = str

# Cache file layout version written by this release
SCHEMA_VERSION = 1

# Serialized stand-in for an unbounded limit
UNBOUNDED = "unbounded"

Quantity = Union[int, float]


# =============================================================================
# ENUMS
# =============================================================================


class UsageWindow(str, Enum):
    """Reporting window a usage figure refers to."""

    DAILY = "daily"  # Session / short rolling window
    WEEKLY = "weekly"  # Seven day window


class FetchStatus(str, Enum):
    """Outcome of the latest fetch attempt for one provider."""

    OK = "ok"
    AUTH_ERROR = "auth_error"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"
    NOT_CONFIGURED = "not_configured"


# =============================================================================
# SERIALIZATION HELPERS
# =============================================================================


def _quantity(value: Any, name: str) -> Quantity:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be a number, got {value!r}")
    if value < 0:
        raise ValueError(f"{name} must not be negative, got {value!r}")
    return value


def _limit_from_json(value: Any) -> Optional[Quantity]:
    if value is None or value == UNBOUNDED:
        return None
    return _quantity(value, "limit")


def _limit_to_json(value: Optional[Quantity]) -> Union[Quantity, str]:
    return UNBOUNDED if value is None else value


def _optional_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a timestamp, got {value!r}")
    return float(value)


def _optional_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


# =============================================================================
# USAGE TYPES
# =============================================================================


@dataclass
class WindowUsage:
    """
    Usage figures for a single reporting window.

    A limit of None means the provider reports no upper bound.
    """

    used: Quantity = 0
    limit: Optional[Quantity] = None
    reset_at: Optional[float] = None  # epoch seconds
    reset_description: Optional[str] = None
    window_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "used": self.used,
            "limit": _limit_to_json(self.limit),
            "reset_at": self.reset_at,
            "reset_description": self.reset_description,
            "window_minutes": self.window_minutes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WindowUsage":
        """Create from dictionary, ignoring unknown fields."""
        return cls(
            used=_quantity(data.get("used", 0), "used"),
            limit=_limit_from_json(data.get("limit")),
            reset_at=_optional_float(data.get("reset_at")),
            reset_description=_optional_str(data.get("reset_description")),
            window_minutes=_optional_int(data.get("window_minutes")),
        )


@dataclass
class UsageSnapshot:
    """
    Most recently known usage figures for one provider.

    The headline fields (used, limit, window, reset_at) describe the window
    the provider reports first; figures for any other window the tool
    reported are kept in ``windows`` keyed by window name.
    """

    used: Quantity = 0
    limit: Optional[Quantity] = None  # None = unbounded
    window: UsageWindow = UsageWindow.DAILY
    reset_at: Optional[float] = None  # epoch seconds
    fetch_status: FetchStatus = FetchStatus.OK

    # False for the placeholder recorded when a provider has never succeeded
    has_data: bool = True
    reset_description: Optional[str] = None
    window_minutes: Optional[int] = None
    windows: Dict[str, WindowUsage] = field(default_factory=dict)

    # Informational fields reported by the usage tool
    credits_remaining: Optional[float] = None
    source: Optional[str] = None
    version: Optional[str] = None
    updated_at: Optional[float] = None
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        _quantity(self.used, "used")
        if self.limit is not None:
            _quantity(self.limit, "limit")
        self.window = UsageWindow(self.window)
        self.fetch_status = FetchStatus(self.fetch_status)

    @classmethod
    def unknown(
        cls,
        status: FetchStatus,
        window: UsageWindow = UsageWindow.DAILY,
        error_message: Optional[str] = None,
    ) -> "UsageSnapshot":
        """Placeholder for a provider with no last-known-good figures."""
        return cls(
            window=window,
            fetch_status=status,
            has_data=False,
            error_message=error_message,
        )

    @property
    def is_ok(self) -> bool:
        return self.fetch_status == FetchStatus.OK

    def headline(self) -> WindowUsage:
        """Headline figures as a WindowUsage record."""
        return WindowUsage(
            used=self.used,
            limit=self.limit,
            reset_at=self.reset_at,
            reset_description=self.reset_description,
            window_minutes=self.window_minutes,
        )

    def window_usage(self, window: UsageWindow) -> Optional[WindowUsage]:
        """
        Figures for the requested window.

        Args:
            window: Window the caller prefers to display

        Returns:
            WindowUsage for that window, or None if the provider did not
            report it (or has no data at all)
        """
        if not self.has_data:
            return None
        window = UsageWindow(window)
        if window == self.window:
            return self.headline()
        return self.windows.get(window.value)

    def annotate(self, status: FetchStatus, error_message: Optional[str]) -> "UsageSnapshot":
        """Copy of this snapshot carried forward under a new fetch status."""
        return replace(self, fetch_status=status, error_message=error_message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "used": self.used,
            "limit": _limit_to_json(self.limit),
            "window": self.window.value,
            "reset_at": self.reset_at,
            "fetch_status": self.fetch_status.value,
            "has_data": self.has_data,
            "reset_description": self.reset_description,
            "window_minutes": self.window_minutes,
            "windows": {name: w.to_dict() for name, w in self.windows.items()},
            "credits_remaining": self.credits_remaining,
            "source": self.source,
            "version": self.version,
            "updated_at": self.updated_at,
            "error_message": self.error_message,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UsageSnapshot":
        """
        Create from dictionary.

        Unknown fields are ignored and missing optional fields fall back to
        their defaults. Raises ValueError/TypeError/KeyError on malformed
        required fields.
        """
        if not isinstance(data, dict):
            raise TypeError(f"snapshot must be an object, got {type(data).__name__}")

        windows: Dict[str, WindowUsage] = {}
        for name, window_data in (data.get("windows") or {}).items():
            if name in UsageWindow._value2member_map_ and isinstance(window_data, dict):
                windows[name] = WindowUsage.from_dict(window_data)

        credits = data.get("credits_remaining")
        return cls(
            used=_quantity(data.get("used", 0), "used"),
            limit=_limit_from_json(data.get("limit")),
            window=UsageWindow(data.get("window", UsageWindow.DAILY.value)),
            reset_at=_optional_float(data.get("reset_at")),
            fetch_status=FetchStatus(data.get("fetch_status", FetchStatus.OK.value)),
            has_data=bool(data.get("has_data", True)),
            reset_description=_optional_str(data.get("reset_description")),
            window_minutes=_optional_int(data.get("window_minutes")),
            windows=windows,
            credits_remaining=(
                float(credits) if isinstance(credits, (int, float)) else None
            ),
            source=_optional_str(data.get("source")),
            version=_optional_str(data.get("version")),
            updated_at=_optional_float(data.get("updated_at")),
            error_message=_optional_str(data.get("error_message")),
        )


# =============================================================================
# CACHE TYPES
# =============================================================================


@dataclass
class CacheEntry:
    """
    The full persisted set of snapshots plus metadata.

    Provider order follows insertion order, which the store keeps equal to
    the configuration order.
    """

    providers: Dict[ProviderId, UsageSnapshot] = field(default_factory=dict)
    fetched_at: float = 0.0  # epoch seconds of the last refresh attempt
    schema_version: int = SCHEMA_VERSION

    def get(self, provider: ProviderId) -> Optional[UsageSnapshot]:
        return self.providers.get(provider)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "schema_version": self.schema_version,
            "fetched_at": self.fetched_at,
            "providers": {
                name: snapshot.to_dict() for name, snapshot in self.providers.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CacheEntry":
        """Create from dictionary; ``fetched_at`` is required."""
        if not isinstance(data, dict):
            raise TypeError(f"cache entry must be an object, got {type(data).__name__}")

        fetched_at = _optional_float(data["fetched_at"])
        if fetched_at is None:
            raise ValueError("fetched_at is missing")

        providers_data = data.get("providers") or {}
        if not isinstance(providers_data, dict):
            raise TypeError("providers must be an object")

        schema_version = data.get("schema_version", SCHEMA_VERSION)
        if isinstance(schema_version, bool) or not isinstance(schema_version, int):
            raise ValueError(f"invalid schema_version {schema_version!r}")

        return cls(
            providers={
                str(name): UsageSnapshot.from_dict(snapshot)
                for name, snapshot in providers_data.items()
            },
            fetched_at=fetched_at,
            schema_version=schema_version,
        )
