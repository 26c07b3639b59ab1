# SPDX-License-Identifier: MIT
# Copyright (c) 2026 Mirrowel

"""TokenGauge entry points: the Waybar module and the terminal dashboard."""

__version__ = "0.3.0"
