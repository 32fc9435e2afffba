"""Hand-maintained suppliers: nothing to sync, orders are placed offline."""

from datetime import datetime, timezone
from typing import Optional

from backoffice.providers.supplier.base import (
    PlacedOrder,
    SupplierOrder,
    SupplierOrderStatus,
    SupplierProduct,
    SupplierProvider,
)


class ManualSupplierProvider(SupplierProvider):
    @property
    def name(self) -> str:
        return "manual"

    @property
    def display_name(self) -> str:
        return "Manual Entry"

    def is_configured(self) -> bool:
        return True

    async def fetch_products(
        self,
        category: Optional[str] = None,
        updated_since: Optional[datetime] = None,
        sku: Optional[str] = None,
    ) -> list[SupplierProduct]:
        return []

    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        return None

    async def get_inventory(self, supplier_skus: Optional[list[str]] = None) -> dict[str, int]:
        return {}

    async def get_pricing(self, supplier_skus: Optional[list[str]] = None) -> dict[str, float]:
        return {}

    async def place_order(self, order: SupplierOrder) -> PlacedOrder:
        stamp = int(datetime.now(timezone.utc).timestamp() * 1000)
        return PlacedOrder(supplier_order_id=f"MANUAL-{stamp}")

    async def get_order_status(self, supplier_order_id: str) -> Optional[SupplierOrderStatus]:
        return None

    def supports_realtime_sync(self) -> bool:
        return False

    def recommended_sync_schedule(self) -> str:
        return "manual"
