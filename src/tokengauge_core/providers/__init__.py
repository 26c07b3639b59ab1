# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""Provider clients that turn an external usage tool into UsageSnapshots."""

from .base import ProviderClient
from .codexbar_client import CodexBarClient
from .scripted import ScriptedProviderClient

__all__ = ["ProviderClient", "CodexBarClient", "ScriptedProviderClient"]
