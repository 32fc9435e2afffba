"""In-memory marketplace channel for development and tests. Accepts everything."""

from datetime import datetime
from typing import Optional

from backoffice.providers.marketplace.base import (
    InventorySyncResult,
    InventoryUpdate,
    MarketplaceOrder,
    MarketplaceProduct,
    MarketplaceProvider,
    ProductValidation,
)


class MockMarketplaceProvider(MarketplaceProvider):
    def __init__(self):
        self.listings: dict[str, MarketplaceProduct] = {}
        self.stock: dict[str, int] = {}
        self.fulfilled: dict[str, str] = {}  # marketplace order id -> tracking number

    @property
    def name(self) -> str:
        return "mock"

    @property
    def display_name(self) -> str:
        return "Mock Marketplace"

    def is_configured(self) -> bool:
        return True

    def validate_product(self, product: MarketplaceProduct) -> ProductValidation:
        return ProductValidation(valid=True)

    async def create_or_update_product(self, product: MarketplaceProduct) -> str:
        sku = product.seller_sku or product.id
        self.listings[sku] = product
        self.stock[sku] = product.quantity
        return sku

    async def delete_product(self, seller_sku: str) -> None:
        self.listings.pop(seller_sku, None)
        self.stock.pop(seller_sku, None)

    async def update_inventory(self, updates: list[InventoryUpdate]) -> InventorySyncResult:
        for update in updates:
            self.stock[update.seller_sku] = update.quantity
        return InventorySyncResult(success=True)

    async def get_orders(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[MarketplaceOrder]:
        return []

    async def fulfill_order(
        self, marketplace_order_id: str, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        self.fulfilled[marketplace_order_id] = tracking_number
