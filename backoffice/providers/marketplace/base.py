"""
Marketplace channel interface (Takealot and friends).

Feed serialization is out of scope here; channels only push listings and
stock, pull orders and mark them fulfilled.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class MarketplaceProduct:
    id: str  # Internal product id
    title: str
    description: str
    price: float
    quantity: int
    currency: str = "ZAR"
    seller_sku: Optional[str] = None
    category_id: Optional[str] = None
    brand: Optional[str] = None
    images: list[str] = field(default_factory=list)
    attributes: dict[str, str] = field(default_factory=dict)
    condition: str = "new"


@dataclass
class InventoryUpdate:
    seller_sku: str
    quantity: int


@dataclass
class SkuError:
    seller_sku: str
    error: str


@dataclass
class InventorySyncResult:
    success: bool
    errors: list[SkuError] = field(default_factory=list)


@dataclass
class MarketplaceOrderItem:
    seller_sku: str
    quantity: int
    price: float


@dataclass
class MarketplaceOrder:
    order_id: str
    marketplace_order_id: str
    order_date: Optional[datetime]
    status: str  # pending, confirmed, shipped, delivered, cancelled
    items: list[MarketplaceOrderItem]
    shipping_name: str = ""
    shipping_address: str = ""
    shipping_city: str = ""
    shipping_province: str = ""
    shipping_postal_code: str = ""
    shipping_phone: str = ""
    currency: str = "ZAR"

    @property
    def total(self) -> float:
        return round(sum(item.price * item.quantity for item in self.items), 2)


@dataclass
class ProductValidation:
    valid: bool
    errors: list[str] = field(default_factory=list)


class MarketplaceProvider(ABC):
    """Abstract base class for marketplace channels."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def display_name(self) -> str: ...

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def create_or_update_product(self, product: MarketplaceProduct) -> str:
        """Publish a listing; returns the channel's seller SKU."""
        ...

    @abstractmethod
    async def delete_product(self, seller_sku: str) -> None: ...

    @abstractmethod
    async def update_inventory(self, updates: list[InventoryUpdate]) -> InventorySyncResult:
        """Push stock levels. Per-SKU failures are reported, not raised."""
        ...

    @abstractmethod
    async def get_orders(
        self,
        status: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> list[MarketplaceOrder]: ...

    @abstractmethod
    async def fulfill_order(
        self, marketplace_order_id: str, tracking_number: str, carrier: Optional[str] = None
    ) -> None: ...

    @abstractmethod
    def validate_product(self, product: MarketplaceProduct) -> ProductValidation: ...
