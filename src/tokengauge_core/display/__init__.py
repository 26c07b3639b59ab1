# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Display layer: the status-bar formatter and the dashboard model.

- formatting: Percentages, severity tiers, countdowns and bars
- status: Cache entry -> status-bar payload (pure)
- dashboard: Interactive view state and its rich renderer
"""

from .dashboard import (
    DashboardCommand,
    DashboardModel,
    DashboardRow,
    DashboardState,
    command_for_key,
    render_dashboard,
)
from .formatting import Severity, compute_percentage, severity_for
from .status import (
    ProviderRender,
    StatusPayload,
    build_render_model,
    degraded_payload,
    format_status,
)

__all__ = [
    "DashboardCommand",
    "DashboardModel",
    "DashboardRow",
    "DashboardState",
    "command_for_key",
    "render_dashboard",
    "Severity",
    "compute_percentage",
    "severity_for",
    "ProviderRender",
    "StatusPayload",
    "build_render_model",
    "degraded_payload",
    "format_status",
]
