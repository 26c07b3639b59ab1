# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Dashboard model and renderer.

The model owns the interactive view's state and talks to the cache store;
the renderer turns the model into a rich renderable. Neither knows about
the terminal application hosting them, which only forwards keys and timer
ticks.

State machine:
    LOADING -> READY -> REFRESHING -> READY
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from ..core.config import DegradedDisplay, GaugeConfig
from ..core.constants import NO_DATA, PLACEHOLDER
from ..core.errors import CacheError
from ..core.types import CacheEntry, UsageSnapshot, UsageWindow
from ..usage.manager import UsageCacheStore
from .formatting import (
    SEVERITY_STYLES,
    Severity,
    compute_percentage,
    format_clock,
    format_percentage,
    format_reset_time,
    format_source,
    format_time_until,
    provider_label,
    render_bar,
    severity_for,
)

lib_logger = logging.getLogger("tokengauge")

# =============================================================================
# CONFIGURATION
# =============================================================================

REFRESH_KEYS = ("r",)
QUIT_KEYS = ("q", "escape")

TICK_INTERVAL_SECS = 1  # countdown re-render
POLL_INTERVAL_SECS = 60  # cache re-read

SPINNER_FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


class DashboardState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    REFRESHING = "refreshing"


class DashboardCommand(str, Enum):
    REFRESH = "refresh"
    QUIT = "quit"


def command_for_key(key: str) -> Optional[DashboardCommand]:
    """Map a key name to a dashboard command; None for unbound keys."""
    if key in REFRESH_KEYS:
        return DashboardCommand.REFRESH
    if key in QUIT_KEYS:
        return DashboardCommand.QUIT
    return None


# =============================================================================
# ROWS
# =============================================================================


@dataclass
class WindowCell:
    """One window column of a dashboard row."""

    percentage: Optional[float] = None
    severity: Severity = Severity.NA
    reset_in: str = PLACEHOLDER
    reset_time: str = PLACEHOLDER
    has_data: bool = False


@dataclass
class DashboardRow:
    provider: str
    label: str
    daily: WindowCell
    weekly: WindowCell
    credits: str = PLACEHOLDER
    source: str = PLACEHOLDER
    updated: str = PLACEHOLDER
    status: str = NO_DATA
    degraded: bool = False
    error_message: Optional[str] = None


class DashboardModel:
    """
    Presentation state for the interactive dashboard.

    Only ``start``, ``run_refresh`` and ``poll_cache`` touch the store;
    ``tick`` recomputes countdowns from memory.

    Args:
        store: Usage cache store shared with the status-bar process
        config: Parsed configuration
        clock: Returns the current epoch time
    """

    def __init__(
        self,
        store: UsageCacheStore,
        config: GaugeConfig,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config
        self._clock = clock
        self.state = DashboardState.LOADING
        self.entry: Optional[CacheEntry] = None
        self.error: Optional[str] = None
        self.status_message: Optional[str] = None
        self.now = clock()
        self.spinner_index = 0
        self.closed = False

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Load the cache, fetching synchronously when there is none."""
        self.state = DashboardState.LOADING
        entry = self.store.load()
        if entry is None:
            lib_logger.info("No cache yet, fetching usage before first render")
            try:
                entry = self.store.get_or_refresh(self.config.providers, self.config.refresh_secs)
            except CacheError as e:
                lib_logger.warning(f"Initial load failed: {e}")
                self._fail(e)
                self.state = DashboardState.READY
                return
        self._show(entry)
        self.state = DashboardState.READY

    def tick(self, now: Optional[float] = None) -> None:
        """Advance countdowns and the spinner. Never performs I/O."""
        self.now = self._clock() if now is None else now
        if self.state != DashboardState.READY:
            self.spinner_index = (self.spinner_index + 1) % len(SPINNER_FRAMES)

    def request_refresh(self) -> bool:
        """
        Enter REFRESHING so the next render shows the spinner.

        Returns:
            False if a refresh is already running or the model is closed
        """
        if self.closed or self.state != DashboardState.READY:
            return False
        self.state = DashboardState.REFRESHING
        self.status_message = "Refreshing"
        return True

    def run_refresh(self) -> None:
        """Force a refresh through the store and return to READY."""
        try:
            entry = self.store.refresh(self.config.providers, force=True)
        except CacheError as e:
            lib_logger.warning(f"Manual refresh failed: {e}")
            self._fail(e)
        else:
            self._show(entry)
            if self.status_message is None:
                self.status_message = f"Refreshed at {format_clock(self.now)}"
        finally:
            self.state = DashboardState.READY

    def refresh(self) -> None:
        """Request and run a refresh in one call."""
        if self.request_refresh():
            self.run_refresh()

    def poll_cache(self) -> None:
        """
        Re-read the cache written by other processes.

        A stale entry goes through the regular fresh-or-refresh path, so the
        dashboard only fetches when the status bar has not already done so.
        """
        if self.closed or self.state != DashboardState.READY:
            return
        entry = self.store.load()
        ttl = self.config.refresh_secs
        if entry is None or not self.store.is_fresh(entry, self._clock(), ttl):
            try:
                entry = self.store.get_or_refresh(self.config.providers, ttl)
            except CacheError as e:
                lib_logger.warning(f"Periodic refresh failed: {e}")
                self._fail(e)
                return
        self._show(entry)

    def quit(self) -> None:
        """Release store resources. Safe to call more than once."""
        if self.closed:
            return
        self.store.close()
        self.closed = True

    def handle_key(self, key: str) -> Optional[DashboardCommand]:
        """Run the command bound to ``key`` synchronously."""
        command = command_for_key(key)
        if command == DashboardCommand.REFRESH:
            self.refresh()
        elif command == DashboardCommand.QUIT:
            self.quit()
        return command

    def _show(self, entry: CacheEntry) -> None:
        self.entry = entry
        self.error = None
        self.now = self._clock()
        if self.store.last_write_error is not None:
            self.status_message = "Cache not saved, see log"
        else:
            self.status_message = None

    def _fail(self, error: CacheError) -> None:
        self.error = str(error)
        self.status_message = "Refresh failed"
        self.now = self._clock()

    # =========================================================================
    # VIEW DATA
    # =========================================================================

    @property
    def spinner(self) -> str:
        return SPINNER_FRAMES[self.spinner_index % len(SPINNER_FRAMES)]

    def status_line(self) -> str:
        if self.state == DashboardState.LOADING:
            return "Loading"
        return self.status_message or "Idle"

    def _cell(self, snapshot: Optional[UsageSnapshot], window: UsageWindow) -> WindowCell:
        figures = snapshot.window_usage(window) if snapshot is not None else None
        if figures is None:
            return WindowCell()

        percentage = None
        carried = not snapshot.is_ok
        if not carried or self.config.degraded_display == DegradedDisplay.LAST_KNOWN:
            percentage = compute_percentage(figures.used, figures.limit)

        if figures.reset_description and figures.reset_at is None:
            reset_in = figures.reset_description
        else:
            reset_in = format_time_until(figures.reset_at, self.now)
        return WindowCell(
            percentage=percentage,
            severity=severity_for(percentage, self.config.thresholds),
            reset_in=reset_in,
            reset_time=format_reset_time(figures.reset_at),
            has_data=True,
        )

    def rows(self) -> List[DashboardRow]:
        """One row per enabled provider, in configuration order."""
        rows = []
        for provider in self.config.enabled_providers:
            snapshot = self.entry.get(provider.name) if self.entry is not None else None
            row = DashboardRow(
                provider=provider.name,
                label=provider_label(provider.name, provider.label),
                daily=self._cell(snapshot, UsageWindow.DAILY),
                weekly=self._cell(snapshot, UsageWindow.WEEKLY),
            )
            if snapshot is not None:
                if snapshot.credits_remaining is not None:
                    row.credits = f"{snapshot.credits_remaining:.2f}"
                row.source = format_source(snapshot.version, snapshot.source)
                row.updated = format_clock(snapshot.updated_at)
                row.degraded = not snapshot.is_ok
                row.error_message = snapshot.error_message
                row.status = snapshot.fetch_status.value.replace("_", " ")
            rows.append(row)
        return rows


# =============================================================================
# RENDERING
# =============================================================================


def _bar_text(cell: WindowCell) -> Text:
    if not cell.has_data:
        return Text(PLACEHOLDER, style="dim")
    style = SEVERITY_STYLES[cell.severity]
    text = Text()
    text.append(render_bar(cell.percentage), style=style)
    text.append(f" {format_percentage(cell.percentage):>4}", style=f"bold {style}")
    return text


def _status_text(row: DashboardRow) -> Text:
    if row.degraded:
        label = f"! {row.status}"
        if row.error_message:
            label += f": {row.error_message}"
        return Text(label, style="yellow")
    if row.status == NO_DATA:
        return Text(NO_DATA, style="dim")
    return Text(row.status, style="green")


def render_dashboard(model: DashboardModel) -> Group:
    """Build the full dashboard view: header, usage table and footer."""
    if model.state == DashboardState.REFRESHING:
        header = Text(f"{model.spinner} Refreshing", style="bold bright_cyan")
    elif model.state == DashboardState.LOADING:
        header = Text(f"{model.spinner} Loading", style="bold bright_cyan")
    else:
        header = Text("TokenGauge Usage", style="bold bright_cyan")
    if model.entry is not None:
        header.append(f"   updated {format_clock(model.entry.fetched_at)}", style="dim")

    rows = model.rows()
    if not rows:
        message = model.error or "No providers enabled"
        body = Panel(Text(message, style="red"), title="Usage", border_style="red")
    else:
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("Provider", style="bold", min_width=10)
        table.add_column("Session Used", min_width=16)
        table.add_column("Session Reset", style="dim")
        table.add_column("Weekly Used", min_width=16)
        table.add_column("Weekly Reset", style="dim")
        table.add_column("Credits", style="bright_green", justify="right")
        table.add_column("Source", style="bright_blue")
        table.add_column("Updated", style="dim")
        table.add_column("Status")
        for row in rows:
            table.add_row(
                row.label,
                _bar_text(row.daily),
                row.daily.reset_in,
                _bar_text(row.weekly),
                row.weekly.reset_in,
                row.credits,
                row.source,
                row.updated,
                _status_text(row),
            )
        body = Panel(table, title="Usage", border_style="cyan")

    footer = Text()
    footer.append("r", style="bold bright_cyan")
    footer.append(" refresh", style="white")
    footer.append(" | ", style="dim")
    footer.append("q/esc", style="bold bright_cyan")
    footer.append(" quit", style="white")
    footer.append(" | ", style="dim")
    status_style = "bold red" if model.error else ("bold yellow" if model.status_message else "dim")
    footer.append(model.status_line(), style=status_style)
    if model.error:
        footer.append(f"  {model.error}", style="red")

    return Group(Panel(header, title="TokenGauge"), body, Panel(footer))
