"""Pick the accounting backend that can actually take a call right now."""

from typing import Optional

from backoffice.providers.accounting.base import AccountingProvider
from backoffice.providers.registry import ProviderRegistry


async def resolve_connected_accounting_provider(
    registry: ProviderRegistry[AccountingProvider],
) -> Optional[AccountingProvider]:
    """
    Preference order:
      1. the default, if configured and connected
      2. the first configured and connected backend
      3. the first configured backend, connected or not
    """
    default_name = registry.default_name
    if default_name:
        default = registry.get(default_name)
        if default is not None and default.is_configured() and await default.is_connected():
            return default

    configured = registry.get_configured()
    for provider in configured:
        if await provider.is_connected():
            return provider
    return configured[0] if configured else None
