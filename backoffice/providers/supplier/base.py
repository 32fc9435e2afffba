"""
Supplier integration interface.

Unlike the other domains, supplier backends are chosen per supplier record:
a supplier either exposes an API (URL + key) or is maintained by hand.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

SYNC_SCHEDULES = ("realtime", "hourly", "daily", "weekly", "manual")


@dataclass
class SupplierProduct:
    supplier_sku: str
    name: str
    price: float
    quantity: int
    currency: str = "ZAR"
    description: Optional[str] = None
    category: Optional[str] = None
    brand: Optional[str] = None
    images: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)
    lead_time_days: Optional[int] = None
    min_order_quantity: Optional[int] = None
    updated_at: Optional[datetime] = None


@dataclass
class SupplierOrderLine:
    supplier_sku: str
    quantity: int
    price: float


@dataclass
class SupplierOrder:
    order_id: str
    items: list[SupplierOrderLine]
    total: float
    currency: str = "ZAR"


@dataclass
class PlacedOrder:
    supplier_order_id: str
    estimated_delivery: Optional[datetime] = None


@dataclass
class SupplierOrderStatus:
    status: str
    tracking_number: Optional[str] = None
    estimated_delivery: Optional[datetime] = None


@dataclass
class ProductCheck:
    valid: bool
    errors: list[str] = field(default_factory=list)


def check_product(product: SupplierProduct, allow_negative_quantity: bool = False) -> ProductCheck:
    """Field rules shared by every supplier backend."""
    errors = []
    if not product.supplier_sku:
        errors.append("Supplier SKU is required")
    if not product.name or len(product.name) < 3:
        errors.append("Product name must be at least 3 characters")
    if product.price <= 0:
        errors.append("Price must be greater than 0")
    if not allow_negative_quantity and product.quantity < 0:
        errors.append("Quantity cannot be negative")
    return ProductCheck(valid=not errors, errors=errors)


class SupplierProvider(ABC):
    """Abstract base class for supplier backends."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def display_name(self) -> str: ...

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def fetch_products(
        self,
        category: Optional[str] = None,
        updated_since: Optional[datetime] = None,
        sku: Optional[str] = None,
    ) -> list[SupplierProduct]: ...

    @abstractmethod
    async def get_product(self, supplier_sku: str) -> Optional[SupplierProduct]: ...

    @abstractmethod
    async def get_inventory(self, supplier_skus: Optional[list[str]] = None) -> dict[str, int]: ...

    @abstractmethod
    async def get_pricing(self, supplier_skus: Optional[list[str]] = None) -> dict[str, float]: ...

    @abstractmethod
    async def place_order(self, order: SupplierOrder) -> PlacedOrder: ...

    @abstractmethod
    async def get_order_status(self, supplier_order_id: str) -> Optional[SupplierOrderStatus]: ...

    @abstractmethod
    def supports_realtime_sync(self) -> bool: ...

    @abstractmethod
    def recommended_sync_schedule(self) -> str:
        """One of ``SYNC_SCHEDULES``."""
        ...

    def validate_product(self, product: SupplierProduct) -> ProductCheck:
        return check_product(product)
