# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from abc import ABC, abstractmethod

from ..core.config import ProviderConfig
from ..core.errors import ProviderNotConfiguredError
from ..core.types import UsageSnapshot


class ProviderClient(ABC):
    """
    Fetches the current usage snapshot for one provider.

    Implementations raise a ProviderError subclass on failure and never
    retry; retry policy (if any) belongs to the caller. A disabled provider
    must short-circuit with ProviderNotConfiguredError before any external
    call is made, which ``fetch`` enforces for every implementation.
    """

    def fetch(self, provider: ProviderConfig) -> UsageSnapshot:
        """
        Fetch usage for a provider.

        Args:
            provider: Parsed provider configuration

        Returns:
            Normalized UsageSnapshot with fetch_status OK

        Raises:
            ProviderAuthError: Missing, invalid or expired credential
            ProviderNetworkError: Tool failed, timed out or is missing
            ProviderParseError: Tool output had an unexpected shape
            ProviderNotConfiguredError: Provider disabled in configuration
        """
        if not provider.enabled:
            raise ProviderNotConfiguredError(provider.name, "provider is disabled")
        return self._fetch(provider)

    @abstractmethod
    def _fetch(self, provider: ProviderConfig) -> UsageSnapshot:
        """Fetch usage for an enabled provider."""
        pass
