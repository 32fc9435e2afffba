"""
In-memory carrier for development and tests.

Accepts up to 100 kg on every service level. Waybills are kept in a dict and
tracking advances one stage per day since creation.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from backoffice.providers.shipping.base import (
    CollectionPoint,
    ShippingProvider,
    ShippingQuote,
    ShippingQuoteRequest,
    TrackingEvent,
    TrackingInfo,
    Waybill,
    WaybillRequest,
)

TRACKING_STAGES = ["created", "picked_up", "in_transit", "out_for_delivery", "delivered"]


class MockShippingProvider(ShippingProvider):
    def __init__(self):
        self.waybills: dict[str, dict] = {}

    @property
    def name(self) -> str:
        return "mock"

    @property
    def display_name(self) -> str:
        return "Mock Shipping Provider"

    def is_configured(self) -> bool:
        return True

    def max_weight(self) -> float:
        return 100

    def supported_service_types(self) -> list[str]:
        return ["standard", "express", "overnight"]

    def supports_collection_points(self) -> bool:
        return True

    async def search_collection_points(
        self,
        postal_code: str,
        city: Optional[str] = None,
        province: Optional[str] = None,
        radius_km: float = 10,
    ) -> list[CollectionPoint]:
        return [
            CollectionPoint(
                id="mock-cp-1",
                name="Mock Collection Point 1",
                address="123 Test Street",
                city=city or "Test City",
                province=province or "Gauteng",
                postal_code=postal_code,
                latitude=-26.2041,
                longitude=28.0473,
                distance=2.5,
                hours="Mon-Fri: 08:00-18:00",
            ),
            CollectionPoint(
                id="mock-cp-2",
                name="Mock Collection Point 2",
                address="456 Demo Avenue",
                city=city or "Test City",
                province=province or "Gauteng",
                postal_code=postal_code,
                latitude=-26.2141,
                longitude=28.0573,
                distance=5.0,
                hours="Mon-Sat: 09:00-17:00",
            ),
        ]

    async def get_quote(self, request: ShippingQuoteRequest) -> Optional[ShippingQuote]:
        same_province = request.origin.province == request.destination.province
        cost = (50 + request.weight * 10) * (1 if same_province else 1.5)
        return ShippingQuote(
            provider=self.name,
            service_type=request.service_type or "standard",
            estimated_days=2 if same_province else 4,
            cost=round(cost, 2),
            currency="ZAR",
        )

    async def create_waybill(self, request: WaybillRequest) -> Waybill:
        number = f"MOCK{uuid.uuid4().hex[:10].upper()}"
        created = datetime.now(timezone.utc)
        self.waybills[number] = {"status": "created", "created": created}
        return Waybill(
            waybill_number=number,
            tracking_url=f"/tracking/{number}",
            cost=0.0,
            estimated_delivery=created + timedelta(days=3),
            provider=self.name,
        )

    async def get_tracking(self, waybill_number: str) -> Optional[TrackingInfo]:
        waybill = self.waybills.get(waybill_number)
        if waybill is None:
            return None
        if waybill["status"] == "cancelled":
            return TrackingInfo(status="cancelled", history=[
                TrackingEvent(status="created", timestamp=waybill["created"], location="Origin"),
            ])

        now = datetime.now(timezone.utc)
        days = (now - waybill["created"]).days
        stage = min(days, len(TRACKING_STAGES) - 1)
        status = TRACKING_STAGES[stage]
        history = [
            TrackingEvent(status="created", timestamp=waybill["created"], location="Origin", notes="Waybill created")
        ]
        if stage > 0:
            history.append(
                TrackingEvent(status=status, timestamp=now, location="In Transit", notes=f"Status updated to {status}")
            )
        return TrackingInfo(
            status=status,
            current_location="Destination" if status == "delivered" else "In Transit",
            estimated_delivery=waybill["created"] + timedelta(days=3),
            history=history,
        )

    async def cancel_waybill(self, waybill_number: str, reason: Optional[str] = None) -> bool:
        waybill = self.waybills.get(waybill_number)
        if waybill is None:
            return False
        waybill["status"] = "cancelled"
        return True
