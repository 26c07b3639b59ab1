# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""
TokenGauge terminal dashboard.

A Textual application hosting the DashboardModel. The app only forwards
key presses and timer ticks; all state lives in the model, which shares the
on-disk cache with the Waybar module.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from textual.app import App, ComposeResult
from textual.widgets import Static

from tokengauge_core.core.config import load_config
from tokengauge_core.core.errors import ConfigError
from tokengauge_core.display.dashboard import (
    POLL_INTERVAL_SECS,
    QUIT_KEYS,
    REFRESH_KEYS,
    TICK_INTERVAL_SECS,
    DashboardModel,
    render_dashboard,
)
from tokengauge_core.usage.manager import build_store

from . import __version__
from .logging_setup import configure_logging

lib_logger = logging.getLogger("tokengauge")

LOG_FILE_NAME = "tokengauge-dashboard.log"


class DashboardApp(App):
    """Interactive usage dashboard."""

    TITLE = "TokenGauge"

    CSS = """
    Screen {
        background: $surface;
    }
    #dashboard {
        padding: 0 1;
    }
    """

    BINDINGS = [(key, "refresh_usage", "Refresh") for key in REFRESH_KEYS] + [
        (key, "quit", "Quit") for key in QUIT_KEYS
    ]

    def __init__(self, model: DashboardModel):
        super().__init__()
        self.model = model

    def compose(self) -> ComposeResult:
        yield Static(id="dashboard")

    def on_mount(self) -> None:
        self._render_view()
        # Let the LOADING view paint before the first (blocking) fetch
        self.call_after_refresh(self._start)
        self.set_interval(TICK_INTERVAL_SECS, self._tick)
        self.set_interval(POLL_INTERVAL_SECS, self._poll)

    def _render_view(self) -> None:
        self.query_one("#dashboard", Static).update(render_dashboard(self.model))

    def _start(self) -> None:
        self.model.start()
        self._render_view()

    def _tick(self) -> None:
        self.model.tick()
        self._render_view()

    def _poll(self) -> None:
        self.model.poll_cache()
        self._render_view()

    def _run_refresh(self) -> None:
        self.model.run_refresh()
        self._render_view()

    def action_refresh_usage(self) -> None:
        if self.model.request_refresh():
            self._render_view()
            self.call_after_refresh(self._run_refresh)

    async def action_quit(self) -> None:
        self.model.quit()
        self.exit()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokengauge-dashboard",
        description="Interactive terminal dashboard for AI provider usage.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: $TOKENGAUGE_CONFIG or ~/.config/tokengauge/config.toml).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help=f"Log file (default: {LOG_FILE_NAME} next to the cache file).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        sys.stderr.write(f"tokengauge-dashboard: {e}\n")
        return 1

    log_file = args.log_file or config.cache_file.with_name(LOG_FILE_NAME)
    configure_logging(log_file=log_file, default_level=logging.INFO)
    lib_logger.info(f"Dashboard starting (cache {config.cache_file})")

    model = DashboardModel(build_store(config), config)
    try:
        DashboardApp(model).run()
    finally:
        model.quit()
    return 0


if __name__ == "__main__":
    sys.exit(main())
