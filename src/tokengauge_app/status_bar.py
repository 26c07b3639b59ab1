# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""
Waybar custom module.

Runs once per polling interval: serves the cached usage when it is fresh,
refreshes it otherwise, prints one JSON line and exits.

Waybar config:
    "custom/tokengauge": {
        "exec": "tokengauge-waybar",
        "return-type": "json",
        "interval": 60
    }
"""

import argparse
import logging
import sys
import time
from pathlib import Path
from typing import Dict, List, Optional

from tokengauge_core.core.config import GaugeConfig, load_config
from tokengauge_core.core.constants import DEGRADED_MARK
from tokengauge_core.core.errors import CacheError, ConfigError
from tokengauge_core.display.status import StatusPayload, degraded_payload, format_status
from tokengauge_core.usage.manager import UsageCacheStore, build_store

from . import __version__
from .logging_setup import configure_logging

lib_logger = logging.getLogger("tokengauge")


def provider_labels(config: GaugeConfig) -> Dict[str, str]:
    return {p.name: p.label for p in config.providers if p.label}


def build_payload(
    store: UsageCacheStore,
    config: GaugeConfig,
    now: Optional[float] = None,
) -> StatusPayload:
    """
    Fresh-or-refreshed entry rendered as a status payload.

    Cache-level failures become the degraded "no data" payload.
    """
    try:
        entry = store.get_or_refresh(config.providers, config.refresh_secs)
    except CacheError as e:
        lib_logger.warning(f"No usage to show: {e}")
        return degraded_payload(str(e))

    payload = format_status(
        entry,
        config.window,
        config.provider_order,
        now=time.time() if now is None else now,
        thresholds=config.thresholds,
        degraded_display=config.degraded_display,
        labels=provider_labels(config),
    )
    if store.last_write_error is not None:
        payload.tooltip += f"\n{DEGRADED_MARK} cache not saved: {store.last_write_error}"
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokengauge-waybar",
        description="Print AI provider usage as a Waybar custom module payload.",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config.toml (default: $TOKENGAUGE_CONFIG or ~/.config/tokengauge/config.toml).",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        lib_logger.error(f"Configuration error: {e}")
        print(degraded_payload(f"config error: {e}").to_json(), flush=True)
        return 1

    store = build_store(config)
    try:
        payload = build_payload(store, config)
    finally:
        store.close()

    print(payload.to_json(), flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
