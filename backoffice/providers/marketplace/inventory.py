"""
Stock fan-out across every configured marketplace channel.

Each channel is pushed concurrently with its own timeout; one channel
failing or hanging never affects the others.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from backoffice.errors import capture, describe
from backoffice.providers.marketplace.base import InventoryUpdate, MarketplaceProvider, SkuError
from backoffice.providers.registry import ProviderRegistry

logger = logging.getLogger("backoffice.marketplace")


@dataclass
class ChannelSyncResult:
    channel: str
    success: bool
    error: Optional[str] = None
    sku_errors: list[SkuError] = field(default_factory=list)


async def sync_marketplace_inventory(
    registry: ProviderRegistry[MarketplaceProvider],
    updates: list[InventoryUpdate],
    timeout: Optional[float] = None,
) -> list[ChannelSyncResult]:
    """Push ``updates`` to every configured channel; returns one result per channel."""
    channels = registry.get_configured()
    if not channels or not updates:
        return []

    outcomes = await asyncio.gather(
        *(capture(channel.name, channel.update_inventory(updates), timeout) for channel in channels)
    )

    results = []
    for outcome in outcomes:
        if not outcome.ok:
            logger.warning("Inventory sync to %s failed: %s", outcome.provider, describe(outcome.error))
            results.append(ChannelSyncResult(channel=outcome.provider, success=False, error=describe(outcome.error)))
            continue
        sync = outcome.value
        results.append(
            ChannelSyncResult(channel=outcome.provider, success=sync.success, sku_errors=list(sync.errors))
        )
    return results
