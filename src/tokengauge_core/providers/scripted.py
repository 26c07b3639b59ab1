# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

"""
Scripted provider client.

Returns fixed snapshots or raises scripted errors without touching any
external tool, so per-provider failure isolation and refresh arbitration can
be exercised deterministically.
"""

from collections import deque
from typing import Callable, Deque, Dict, Iterable, List, Optional, Union

from ..core.config import ProviderConfig
from ..core.errors import ProviderError, ProviderNetworkError
from ..core.types import UsageSnapshot
from .base import ProviderClient

ScriptedResult = Union[UsageSnapshot, ProviderError]


class ScriptedProviderClient(ProviderClient):
    """
    Provider client that replays scripted results.

    Each provider has a queue of results; the last one repeats once the
    queue is drained. Providers with no script fail with a network error.

    Attributes:
        calls: Provider names in the order fetch reached the "tool"
        on_fetch: Optional hook run before a result is produced, used to
            interleave a second caller in the middle of a refresh
    """

    def __init__(self, script: Optional[Dict[str, Union[ScriptedResult, Iterable[ScriptedResult]]]] = None):
        self._script: Dict[str, Deque[ScriptedResult]] = {}
        self.calls: List[str] = []
        self.on_fetch: Optional[Callable[[ProviderConfig], None]] = None
        for provider, results in (script or {}).items():
            self.set(provider, results)

    def set(self, provider: str, results: Union[ScriptedResult, Iterable[ScriptedResult]]) -> None:
        """Replace the scripted results for a provider."""
        if isinstance(results, (UsageSnapshot, ProviderError)):
            results = [results]
        self._script[provider] = deque(results)

    def call_count(self, provider: str) -> int:
        return self.calls.count(provider)

    def _fetch(self, provider: ProviderConfig) -> UsageSnapshot:
        self.calls.append(provider.name)
        if self.on_fetch is not None:
            self.on_fetch(provider)

        queue = self._script.get(provider.name)
        if not queue:
            raise ProviderNetworkError(provider.name, "no scripted result")
        result = queue.popleft() if len(queue) > 1 else queue[0]
        if isinstance(result, ProviderError):
            raise result
        return result
