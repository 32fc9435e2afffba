"""
Shipping carrier interface and the value types carriers exchange.

Weights are kilograms, dimensions centimetres, costs in the quote's
currency (ZAR for every current carrier).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass
class Location:
    city: str
    province: str
    postal_code: str


@dataclass
class Dimensions:
    length: float
    width: float
    height: float


@dataclass
class ShippingQuoteRequest:
    origin: Location
    destination: Location
    weight: float
    dimensions: Optional[Dimensions] = None
    service_type: Optional[str] = None  # standard, express, overnight
    collection_point_id: Optional[str] = None


@dataclass
class CollectionPointSummary:
    id: str
    name: str
    address: str
    city: str
    distance: Optional[float] = None  # km


@dataclass
class ShippingQuote:
    provider: str
    service_type: str
    estimated_days: int
    cost: float
    currency: str = "ZAR"
    collection_point: Optional[CollectionPointSummary] = None


@dataclass
class Address:
    name: str
    address: str
    city: str
    province: str
    postal_code: str
    phone: str = ""
    email: str = ""


@dataclass
class WaybillItem:
    description: str
    quantity: int
    weight: float  # Per unit
    value: float


@dataclass
class WaybillRequest:
    order_id: str
    origin: Address
    destination: Address
    items: list[WaybillItem]
    reference: str
    service_type: str = "standard"
    collection_point_id: Optional[str] = None

    @property
    def total_weight(self) -> float:
        return sum(item.weight * item.quantity for item in self.items)


@dataclass
class Waybill:
    waybill_number: str
    tracking_url: str
    cost: float
    estimated_delivery: Optional[datetime]
    provider: str


@dataclass
class TrackingEvent:
    status: str
    timestamp: Optional[datetime]
    location: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class TrackingInfo:
    status: str
    current_location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    history: list[TrackingEvent] = field(default_factory=list)


@dataclass
class CollectionPoint:
    id: str
    name: str
    address: str
    city: str
    province: str
    postal_code: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None  # km from the search location
    hours: Optional[str] = None
    phone: Optional[str] = None


class ShippingProvider(ABC):
    """Abstract base class for shipping carriers."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Carrier identifier (e.g. 'courier-guy')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str: ...

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    def max_weight(self) -> float:
        """Heaviest parcel the carrier accepts, in kg."""
        ...

    @abstractmethod
    def supported_service_types(self) -> list[str]: ...

    def supports_collection_points(self) -> bool:
        return False

    async def search_collection_points(
        self,
        postal_code: str,
        city: Optional[str] = None,
        province: Optional[str] = None,
        radius_km: float = 10,
    ) -> list[CollectionPoint]:
        return []

    @abstractmethod
    async def get_quote(self, request: ShippingQuoteRequest) -> Optional[ShippingQuote]:
        """
        Price a shipment. ``None`` means the carrier declines it.

        Raises:
            UpstreamError: Vendor call failed and no estimate is available.
        """
        ...

    @abstractmethod
    async def create_waybill(self, request: WaybillRequest) -> Waybill: ...

    @abstractmethod
    async def get_tracking(self, waybill_number: str) -> Optional[TrackingInfo]: ...

    @abstractmethod
    async def cancel_waybill(self, waybill_number: str, reason: Optional[str] = None) -> bool: ...
