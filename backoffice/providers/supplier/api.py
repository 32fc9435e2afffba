"""
Generic REST supplier adapter, built per supplier from its own URL and key.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from backoffice.errors import ConfigurationError, UpstreamError
from backoffice.providers.http import VendorClient, parse_timestamp
from backoffice.providers.supplier.base import (
    PlacedOrder,
    ProductCheck,
    SupplierOrder,
    SupplierOrderStatus,
    SupplierProduct,
    SupplierProvider,
    check_product,
)

logger = logging.getLogger("backoffice.supplier.api")


@dataclass
class SupplierApiConfig:
    api_url: str
    api_key: str


def _product(raw: dict) -> SupplierProduct:
    return SupplierProduct(
        supplier_sku=raw.get("sku") or raw.get("supplier_sku") or "",
        name=raw.get("name") or raw.get("title") or "",
        description=raw.get("description"),
        price=float(raw.get("price") or 0),
        currency=raw.get("currency") or "ZAR",
        quantity=int(raw.get("quantity") or raw.get("stock") or 0),
        category=raw.get("category"),
        brand=raw.get("brand"),
        images=raw.get("images") or [],
        attributes=raw.get("attributes") or {},
        lead_time_days=raw.get("lead_time_days"),
        min_order_quantity=raw.get("min_order_quantity"),
        updated_at=parse_timestamp(raw.get("updated_at")),
    )


class ApiSupplierProvider(SupplierProvider):
    def __init__(self, config: SupplierApiConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.api_url or "", provider="supplier-api", timeout=timeout)

    @property
    def name(self) -> str:
        return "api"

    @property
    def display_name(self) -> str:
        return "Supplier API"

    def is_configured(self) -> bool:
        return bool(self.config.api_url and self.config.api_key)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Supplier API URL or key is missing", provider=self.name)
        return {"Authorization": f"Bearer {self.config.api_key}"}

    async def fetch_products(
        self,
        category: Optional[str] = None,
        updated_since: Optional[datetime] = None,
        sku: Optional[str] = None,
    ) -> list[SupplierProduct]:
        params = {}
        if category:
            params["category"] = category
        if updated_since:
            params["updated_since"] = updated_since.isoformat()
        if sku:
            params["sku"] = sku
        data = await self._client.get_json(
            "/products", headers=self._headers(), params=params, operation="fetch_products"
        )
        return [_product(raw) for raw in data.get("products") or []]

    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]:
        try:
            data = await self._client.get_json(
                f"/products/{supplier_sku}", headers=self._headers(), operation="get_product"
            )
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        raw = data.get("product") or data
        return _product(raw) if raw else None

    async def get_inventory(self, supplier_skus: Optional[list[str]] = None) -> dict[str, int]:
        params = {"skus": ",".join(supplier_skus)} if supplier_skus else None
        data = await self._client.get_json(
            "/inventory", headers=self._headers(), params=params, operation="get_inventory"
        )
        return {
            item.get("sku") or item.get("supplier_sku"): int(item.get("quantity") or item.get("stock") or 0)
            for item in data.get("inventory") or []
        }

    async def get_pricing(self, supplier_skus: Optional[list[str]] = None) -> dict[str, float]:
        params = {"skus": ",".join(supplier_skus)} if supplier_skus else None
        data = await self._client.get_json(
            "/pricing", headers=self._headers(), params=params, operation="get_pricing"
        )
        return {
            item.get("sku") or item.get("supplier_sku"): float(item.get("price") or 0)
            for item in data.get("pricing") or []
        }

    async def place_order(self, order: SupplierOrder) -> PlacedOrder:
        data = await self._client.post_json(
            "/orders",
            headers=self._headers(),
            json={
                "reference": order.order_id,
                "items": [
                    {"supplier_sku": line.supplier_sku, "quantity": line.quantity, "price": line.price}
                    for line in order.items
                ],
                "total": order.total,
                "currency": order.currency,
            },
            operation="place_order",
        )
        supplier_order_id = data.get("order_id") or data.get("supplier_order_id")
        if not supplier_order_id:
            raise UpstreamError("Supplier did not return an order id", provider=self.name, retriable=False)
        logger.info("Placed supplier order %s for %s", supplier_order_id, order.order_id)
        return PlacedOrder(
            supplier_order_id=supplier_order_id,
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
        )

    async def get_order_status(self, supplier_order_id: str) -> Optional[SupplierOrderStatus]:
        try:
            data = await self._client.get_json(
                f"/orders/{supplier_order_id}", headers=self._headers(), operation="order_status"
            )
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        return SupplierOrderStatus(
            status=data.get("status") or "unknown",
            tracking_number=data.get("tracking_number"),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
        )

    def supports_realtime_sync(self) -> bool:
        return True

    def recommended_sync_schedule(self) -> str:
        return "hourly"

    def validate_product(self, product: SupplierProduct) -> ProductCheck:
        # Stock levels from the feed are taken as-is.
        return check_product(product, allow_negative_quantity=True)
