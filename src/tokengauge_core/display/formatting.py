# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Formatting helpers shared by the status-bar formatter and the dashboard.

Everything here is pure: callers pass the current time explicitly.
"""

import math
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional, Union

from ..core.config import Thresholds
from ..core.constants import BAR_WIDTH, PLACEHOLDER, PROVIDER_LABELS

Quantity = Union[int, float]


class Severity(str, Enum):
    """Display tier, also used as the status-bar CSS class."""

    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"
    NA = "na"  # No computable percentage
    ERROR = "error"  # Cache layer failed, nothing to show

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {
    Severity.NA: 0,
    Severity.NORMAL: 1,
    Severity.WARNING: 2,
    Severity.CRITICAL: 3,
    Severity.ERROR: 4,
}

# Rich styles per tier
SEVERITY_STYLES = {
    Severity.NORMAL: "green",
    Severity.WARNING: "yellow",
    Severity.CRITICAL: "red",
    Severity.NA: "dim",
    Severity.ERROR: "bold red",
}


def provider_label(provider: str, override: Optional[str] = None) -> str:
    """Human-readable provider name."""
    if override:
        return override
    return PROVIDER_LABELS.get(provider, provider)


# =============================================================================
# PERCENTAGES & SEVERITY
# =============================================================================


def compute_percentage(used: Quantity, limit: Optional[Quantity]) -> Optional[float]:
    """
    Percentage of the limit used, clamped to [0, 100].

    Returns None when the limit is unbounded or zero.
    """
    if limit is None or limit <= 0:
        return None
    percentage = used / limit * 100
    return min(max(percentage, 0.0), 100.0)


def format_percentage(percentage: Optional[float]) -> str:
    if percentage is None:
        return "N/A"
    return f"{percentage:.0f}%"


def severity_for(percentage: Optional[float], thresholds: Thresholds) -> Severity:
    if percentage is None:
        return Severity.NA
    if percentage >= thresholds.critical:
        return Severity.CRITICAL
    if percentage >= thresholds.warning:
        return Severity.WARNING
    return Severity.NORMAL


def worst_severity(severities: Iterable[Severity]) -> Severity:
    """Highest tier among the given ones; NA when there are none."""
    worst = Severity.NA
    for severity in severities:
        if severity.rank > worst.rank:
            worst = severity
    return worst


# =============================================================================
# TIME
# =============================================================================


def format_countdown(seconds: float) -> str:
    """Format seconds as a short duration (e.g. '2h 5m')."""
    seconds = int(seconds)
    if seconds <= 0:
        return "now"
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        mins = seconds // 60
        secs = seconds % 60
        return f"{mins}m {secs}s" if secs > 0 else f"{mins}m"
    elif seconds < 86400:
        hours = seconds // 3600
        mins = (seconds % 3600) // 60
        return f"{hours}h {mins}m" if mins > 0 else f"{hours}h"
    else:
        days = seconds // 86400
        hours = (seconds % 86400) // 3600
        return f"{days}d {hours}h" if hours > 0 else f"{days}d"


def format_time_until(reset_at: Optional[float], now: float) -> str:
    """Countdown to a reset timestamp, or the placeholder if unknown."""
    if reset_at is None:
        return PLACEHOLDER
    remaining = reset_at - now
    if remaining <= 0:
        return "now"
    return f"in {format_countdown(remaining)}"


def format_reset_time(reset_at: Optional[float]) -> str:
    """Format an epoch timestamp as local time for display."""
    if reset_at is None:
        return PLACEHOLDER
    try:
        return datetime.fromtimestamp(reset_at).astimezone().strftime("%b %d %H:%M")
    except (ValueError, OSError, OverflowError):
        return PLACEHOLDER


def format_source(version: Optional[str], source: Optional[str]) -> str:
    """Tool version and data source, e.g. '0.18.0 (oauth)'."""
    if version and source:
        return f"{version} ({source})"
    return version or source or PLACEHOLDER


def format_clock(timestamp: Optional[float]) -> str:
    """Local HH:MM of a timestamp."""
    if not timestamp:
        return PLACEHOLDER
    try:
        return datetime.fromtimestamp(timestamp).astimezone().strftime("%H:%M")
    except (ValueError, OSError, OverflowError):
        return PLACEHOLDER


# =============================================================================
# QUANTITIES & BARS
# =============================================================================


def format_quantity(value: Optional[Quantity]) -> str:
    """Format a usage figure (e.g. 125000 -> 125,000, 42.5 -> 42.5)."""
    if value is None:
        return "∞"
    if isinstance(value, float) and not value.is_integer():
        return f"{value:,.1f}"
    return f"{int(value):,}"


def render_bar(percentage: Optional[float], width: int = BAR_WIDTH) -> str:
    """Ten-cell usage bar; any usage above zero fills at least one cell."""
    if percentage is None:
        return "░" * width
    filled = min(width, math.ceil(percentage * width / 100))
    return "█" * filled + "░" * (width - filled)
