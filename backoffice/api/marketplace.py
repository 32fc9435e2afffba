"""
Marketplace endpoints.

POST /marketplace/inventory - Push stock levels to every configured channel.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from backoffice.api.deps import get_registries
from backoffice.config import settings
from backoffice.providers.marketplace.base import InventoryUpdate
from backoffice.providers.marketplace.inventory import sync_marketplace_inventory
from backoffice.registries import Registries

router = APIRouter(prefix="/marketplace", tags=["marketplace"])


class InventoryLine(BaseModel):
    seller_sku: str
    quantity: int


class InventoryBody(BaseModel):
    updates: list[InventoryLine]


class SkuErrorOut(BaseModel):
    seller_sku: str
    error: str


class ChannelResultOut(BaseModel):
    channel: str
    success: bool
    error: Optional[str] = None
    sku_errors: list[SkuErrorOut] = []


@router.post("/inventory", response_model=list[ChannelResultOut])
async def push_inventory(body: InventoryBody, registries: Registries = Depends(get_registries)):
    results = await sync_marketplace_inventory(
        registries.marketplace,
        [InventoryUpdate(seller_sku=line.seller_sku, quantity=line.quantity) for line in body.updates],
        timeout=settings.provider_timeout_seconds,
    )
    return [
        ChannelResultOut(
            channel=r.channel,
            success=r.success,
            error=r.error,
            sku_errors=[SkuErrorOut(seller_sku=e.seller_sku, error=e.error) for e in r.sku_errors],
        )
        for r in results
    ]
