# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Constants and default values for TokenGauge.

Tunable defaults used when a configuration file omits a value, plus the
non-tunable constants shared by the store and both display surfaces.
"""

# =============================================================================
# CONFIGURATION DEFAULTS
# =============================================================================

DEFAULT_CODEXBAR_BIN = "codexbar"
DEFAULT_SOURCE = "oauth"
DEFAULT_REFRESH_SECS = 600  # freshness TTL
DEFAULT_TIMEOUT_SECS = 10.0  # per external tool invocation
DEFAULT_CACHE_FILE = "/tmp/tokengauge-usage.json"
DEFAULT_WINDOW = "daily"
DEFAULT_LEASE_WAIT_SECS = 2.0
DEFAULT_PROVIDERS = ("codex", "claude")

# Severity thresholds, percent used
DEFAULT_WARNING_THRESHOLD = 60.0
DEFAULT_CRITICAL_THRESHOLD = 90.0

# =============================================================================
# ENVIRONMENT VARIABLES
# =============================================================================

ENV_CONFIG_PATH = "TOKENGAUGE_CONFIG"
ENV_CACHE_FILE = "TOKENGAUGE_CACHE_FILE"
ENV_REFRESH_SECS = "TOKENGAUGE_REFRESH_SECS"
ENV_LOG_LEVEL = "TOKENGAUGE_LOG_LEVEL"

# =============================================================================
# REFRESH ARBITRATION
# =============================================================================

# A lease older than timeout * multiplier * enabled providers is abandoned
LEASE_STALE_MULTIPLIER = 3
LEASE_POLL_INTERVAL = 0.25
LEASE_SUFFIX = ".lock"

# =============================================================================
# DISPLAY
# =============================================================================

PROVIDER_LABELS = {
    "codex": "Codex",
    "claude": "Claude",
    "kiro": "Kiro",
    "gemini": "Gemini",
    "copilot": "Copilot",
    "zai": "z.ai",
    "cursor": "Cursor",
    "factory": "Factory",
    "kimi": "Kimi",
    "kimik2": "Kimi K2",
    "vertexai": "Vertex AI",
    "antigravity": "Antigravity",
    "opencode": "OpenCode",
    "minimax": "MiniMax",
}

BAR_WIDTH = 10
PLACEHOLDER = "—"
DEGRADED_MARK = "!"
NO_DATA = "no data"
