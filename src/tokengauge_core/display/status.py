# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Status-bar formatter.

Turns a cache entry into the one-line payload a Waybar custom module
expects. Pure: no cache access and no I/O, the caller passes ``now``.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional

from ..core.config import DegradedDisplay, Thresholds
from ..core.constants import DEGRADED_MARK, NO_DATA, PLACEHOLDER
from ..core.types import CacheEntry, FetchStatus, UsageWindow
from .formatting import (
    Severity,
    compute_percentage,
    format_clock,
    format_percentage,
    format_quantity,
    format_reset_time,
    format_time_until,
    provider_label,
    severity_for,
    worst_severity,
)

ERROR_TEXT = "⟂"


@dataclass
class ProviderRender:
    """Display-ready view of one provider. Derived, never persisted."""

    provider: str
    label: str
    percentage: Optional[float]
    severity: Severity
    window: UsageWindow
    used: Optional[float] = None
    limit: Optional[float] = None
    reset_at: Optional[float] = None
    reset_in: str = PLACEHOLDER
    degraded: bool = False
    has_data: bool = False
    fetch_status: Optional[FetchStatus] = None
    error_message: Optional[str] = None


def build_render_model(
    entry: CacheEntry,
    window_preference: UsageWindow,
    provider_order: List[str],
    *,
    now: float,
    thresholds: Thresholds,
    degraded_display: DegradedDisplay = DegradedDisplay.LAST_KNOWN,
    labels: Optional[Mapping[str, str]] = None,
) -> List[ProviderRender]:
    """
    Per-provider render records in ``provider_order``.

    The preferred window is shown when the provider reported it, otherwise
    the provider's headline window. Providers missing from the entry are
    rendered without data; providers not in ``provider_order`` are skipped.
    """
    labels = labels or {}
    renders = []
    for provider in provider_order:
        label = provider_label(provider, labels.get(provider))
        snapshot = entry.get(provider)
        if snapshot is None:
            renders.append(
                ProviderRender(
                    provider=provider,
                    label=label,
                    percentage=None,
                    severity=Severity.NA,
                    window=UsageWindow(window_preference),
                )
            )
            continue

        figures = snapshot.window_usage(window_preference)
        if figures is None and snapshot.has_data:
            figures = snapshot.headline()
            window = snapshot.window
        else:
            window = UsageWindow(window_preference)

        degraded = not snapshot.is_ok
        percentage = None
        if figures is not None and (
            not degraded or degraded_display == DegradedDisplay.LAST_KNOWN
        ):
            percentage = compute_percentage(figures.used, figures.limit)

        reset_at = figures.reset_at if figures is not None else None
        renders.append(
            ProviderRender(
                provider=provider,
                label=label,
                percentage=percentage,
                severity=severity_for(percentage, thresholds),
                window=window,
                used=figures.used if figures is not None else None,
                limit=figures.limit if figures is not None else None,
                reset_at=reset_at,
                reset_in=format_time_until(reset_at, now),
                degraded=degraded,
                has_data=figures is not None,
                fetch_status=snapshot.fetch_status,
                error_message=snapshot.error_message,
            )
        )
    return renders


# =============================================================================
# PAYLOAD
# =============================================================================


@dataclass
class StatusPayload:
    """What the status bar shows: text, hover tooltip and CSS class."""

    text: str
    tooltip: str
    severity_class: Severity
    percentage: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "text": self.text,
            "tooltip": self.tooltip,
            "class": self.severity_class.value,
        }
        if self.percentage is not None:
            data["percentage"] = self.percentage
        return data

    def to_json(self) -> str:
        """Single-line JSON in the Waybar custom module format."""
        return json.dumps(self.to_dict(), ensure_ascii=False)


def _text_part(render: ProviderRender) -> str:
    mark = DEGRADED_MARK if render.degraded else ""
    return f"{render.label} {format_percentage(render.percentage)}{mark}"


def _tooltip_line(render: ProviderRender) -> str:
    if not render.has_data:
        line = f"{render.label}: {NO_DATA}"
    else:
        limit = format_quantity(render.limit)
        line = (
            f"{render.label}: {format_quantity(render.used)}/{limit} "
            f"({format_percentage(render.percentage)}) {render.window.value}"
        )
        if render.reset_at is not None:
            line += f", resets {format_reset_time(render.reset_at)} ({render.reset_in})"
    if render.degraded and render.fetch_status is not None:
        detail = render.fetch_status.value.replace("_", " ")
        if render.error_message:
            detail += f": {render.error_message}"
        line += f" [{DEGRADED_MARK} {detail}]"
    return line


def format_status(
    entry: CacheEntry,
    window_preference: UsageWindow,
    provider_order: List[str],
    *,
    now: float,
    thresholds: Optional[Thresholds] = None,
    degraded_display: DegradedDisplay = DegradedDisplay.LAST_KNOWN,
    labels: Optional[Mapping[str, str]] = None,
) -> StatusPayload:
    """
    Build the status-bar payload for a cache entry.

    Args:
        entry: Current cache entry
        window_preference: Window to show when a provider reports several
        provider_order: Providers to show, in display order
        now: Current epoch time, used for countdowns
        thresholds: Severity thresholds (defaults 60/90)
        degraded_display: How carried-forward figures count
        labels: Per-provider display name overrides

    Returns:
        StatusPayload whose class is the worst tier across providers
    """
    thresholds = thresholds or Thresholds()
    renders = build_render_model(
        entry,
        window_preference,
        provider_order,
        now=now,
        thresholds=thresholds,
        degraded_display=degraded_display,
        labels=labels,
    )
    if not renders:
        return StatusPayload(
            text=PLACEHOLDER,
            tooltip="TokenGauge: no providers",
            severity_class=Severity.NA,
        )

    text = "  ".join(_text_part(r) for r in renders)
    lines = [_tooltip_line(r) for r in renders]
    lines.append(f"Updated {format_clock(entry.fetched_at)}")

    percentages = [r.percentage for r in renders if r.percentage is not None]
    return StatusPayload(
        text=text,
        tooltip="\n".join(lines),
        severity_class=worst_severity(r.severity for r in renders),
        percentage=round(max(percentages)) if percentages else None,
    )


def degraded_payload(message: str) -> StatusPayload:
    """Payload shown when the cache layer could not produce an entry."""
    return StatusPayload(
        text=f"{ERROR_TEXT} {NO_DATA}",
        tooltip=f"TokenGauge: {message}",
        severity_class=Severity.ERROR,
    )
