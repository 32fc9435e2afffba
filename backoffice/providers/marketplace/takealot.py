"""Takealot seller API adapter."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from backoffice.errors import ConfigurationError, UpstreamError, ValidationError
from backoffice.providers.http import VendorClient, parse_timestamp
from backoffice.providers.marketplace.base import (
    InventorySyncResult,
    InventoryUpdate,
    MarketplaceOrder,
    MarketplaceOrderItem,
    MarketplaceProduct,
    MarketplaceProvider,
    ProductValidation,
    SkuError,
)

logger = logging.getLogger("backoffice.marketplace.takealot")

MAX_IMAGES = 10


@dataclass
class TakealotConfig:
    api_key: str
    seller_id: str
    api_url: str = "https://api.takealot.com"


class TakealotProvider(MarketplaceProvider):
    def __init__(self, config: TakealotConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.api_url, provider="takealot", timeout=timeout)

    @property
    def name(self) -> str:
        return "takealot"

    @property
    def display_name(self) -> str:
        return "Takealot"

    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.seller_id)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Takealot is not configured", provider=self.name)
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "X-Seller-ID": self.config.seller_id,
        }

    def validate_product(self, product: MarketplaceProduct) -> ProductValidation:
        errors = []
        if not product.title or len(product.title) < 10:
            errors.append("Title must be at least 10 characters")
        if not product.description or len(product.description) < 50:
            errors.append("Description must be at least 50 characters")
        if product.price <= 0:
            errors.append("Price must be greater than 0")
        if product.quantity < 0:
            errors.append("Quantity cannot be negative")
        if not product.images:
            errors.append("At least one image is required")
        elif len(product.images) > MAX_IMAGES:
            errors.append(f"Maximum {MAX_IMAGES} images allowed")
        return ProductValidation(valid=not errors, errors=errors)

    async def create_or_update_product(self, product: MarketplaceProduct) -> str:
        validation = self.validate_product(product)
        if not validation.valid:
            raise ValidationError("Product rejected by Takealot rules", errors=validation.errors)
        seller_sku = product.seller_sku or product.id
        data = await self._client.post_json(
            "/v1/products",
            headers=self._headers(),
            json={
                "seller_sku": seller_sku,
                "title": product.title,
                "description": product.description,
                "price": product.price,
                "quantity": product.quantity,
                "category_id": product.category_id or "",
                "brand": product.brand or "",
                "images": product.images,
                "attributes": product.attributes,
            },
            operation="upsert_product",
        )
        return data.get("takealot_sku") or data.get("seller_sku") or seller_sku

    async def delete_product(self, seller_sku: str) -> None:
        await self._client.request(
            "DELETE", f"/v1/products/{seller_sku}", headers=self._headers(), operation="delete_product"
        )

    async def update_inventory(self, updates: list[InventoryUpdate]) -> InventorySyncResult:
        headers = self._headers()
        errors = []
        for update in updates:
            try:
                await self._client.request(
                    "PUT",
                    f"/v1/inventory/{update.seller_sku}",
                    headers=headers,
                    json={"quantity": update.quantity},
                    operation="update_inventory",
                )
            except UpstreamError as e:
                errors.append(SkuError(seller_sku=update.seller_sku, error=str(e)))
        return InventorySyncResult(success=not errors, errors=errors)

    async def get_orders(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[MarketplaceOrder]:
        params = {}
        if status:
            params["status"] = status
        if start_date:
            params["start_date"] = start_date.isoformat()
        if end_date:
            params["end_date"] = end_date.isoformat()
        data = await self._client.get_json(
            "/v1/orders", headers=self._headers(), params=params, operation="get_orders"
        )
        orders = []
        for raw in data.get("orders") or []:
            address = raw.get("shipping_address") or {}
            orders.append(
                MarketplaceOrder(
                    order_id=raw["order_id"],
                    marketplace_order_id=raw["order_id"],
                    order_date=parse_timestamp(raw.get("order_date")),
                    status=raw.get("status") or "pending",
                    items=[
                        MarketplaceOrderItem(
                            seller_sku=item.get("seller_sku", ""),
                            quantity=int(item.get("quantity") or 0),
                            price=float(item.get("price") or 0),
                        )
                        for item in raw.get("items") or []
                    ],
                    shipping_name=address.get("name", ""),
                    shipping_address=address.get("address", ""),
                    shipping_city=address.get("city", ""),
                    shipping_province=address.get("province", ""),
                    shipping_postal_code=address.get("postal_code", ""),
                    shipping_phone=address.get("phone", ""),
                )
            )
        return orders

    async def fulfill_order(
        self, marketplace_order_id: str, tracking_number: str, carrier: Optional[str] = None
    ) -> None:
        await self._client.request(
            "POST",
            f"/v1/orders/{marketplace_order_id}/fulfill",
            headers=self._headers(),
            json={"tracking_number": tracking_number, "carrier": carrier},
            operation="fulfill_order",
        )
        logger.info("Fulfilled Takealot order %s (%s)", marketplace_order_id, tracking_number)
