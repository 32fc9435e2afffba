"""
Pargo adapter: collection-point delivery, up to 20 kg, standard service only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from backoffice.errors import ConfigurationError, UpstreamError, ValidationError
from backoffice.providers.http import VendorClient, parse_timestamp
from backoffice.providers.shipping.base import (
    CollectionPoint,
    CollectionPointSummary,
    ShippingProvider,
    ShippingQuote,
    ShippingQuoteRequest,
    TrackingEvent,
    TrackingInfo,
    Waybill,
    WaybillRequest,
)

logger = logging.getLogger("backoffice.shipping.pargo")

BASE_COST = 45.0
PER_KG_COST = 5.0


@dataclass
class PargoConfig:
    api_key: str
    client_id: str
    api_url: str = "https://api.pargo.co.za/v1"


def estimate_cost(weight: float) -> float:
    return round(BASE_COST + weight * PER_KG_COST, 2)


class PargoProvider(ShippingProvider):
    def __init__(self, config: PargoConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.api_url, provider="pargo", timeout=timeout)

    @property
    def name(self) -> str:
        return "pargo"

    @property
    def display_name(self) -> str:
        return "Pargo Collection Points"

    def is_configured(self) -> bool:
        return bool(self.config.api_key and self.config.client_id)

    def max_weight(self) -> float:
        return 20

    def supported_service_types(self) -> list[str]:
        return ["standard"]

    def supports_collection_points(self) -> bool:
        return True

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Pargo API key or client id is not configured", provider=self.name)
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "X-Client-Id": self.config.client_id,
        }

    async def search_collection_points(
        self,
        postal_code: str,
        city: Optional[str] = None,
        province: Optional[str] = None,
        radius_km: float = 10,
    ) -> list[CollectionPoint]:
        params = {"postal_code": postal_code, "radius": str(radius_km)}
        if city:
            params["city"] = city
        if province:
            params["province"] = province
        data = await self._client.get_json(
            "/collection-points", headers=self._headers(), params=params, operation="collection_points"
        )
        return [
            CollectionPoint(
                id=point.get("id") or point.get("pickup_point_id"),
                name=point.get("name") or point.get("description") or "",
                address=point.get("address_line_1") or point.get("address") or "",
                city=point.get("city") or "",
                province=point.get("province") or "",
                postal_code=point.get("postal_code") or postal_code,
                latitude=point.get("latitude"),
                longitude=point.get("longitude"),
                distance=point.get("distance_km"),
                hours=point.get("opening_hours"),
                phone=point.get("phone"),
            )
            for point in data.get("collection_points") or []
        ]

    async def get_quote(self, request: ShippingQuoteRequest) -> Optional[ShippingQuote]:
        if request.weight > self.max_weight():
            return None
        headers = self._headers()
        payload = {"postal_code": request.destination.postal_code, "weight": request.weight}
        if request.collection_point_id:
            payload["collection_point_id"] = request.collection_point_id

        try:
            data = await self._client.post_json("/quotes", headers=headers, json=payload, operation="quote")
        except UpstreamError as e:
            logger.warning("Live quote failed, using estimate: %s", e)
            return ShippingQuote(
                provider=self.name,
                service_type="standard",
                estimated_days=3,
                cost=estimate_cost(request.weight),
                currency="ZAR",
            )

        quote = ShippingQuote(
            provider=self.name,
            service_type="standard",
            estimated_days=int(data.get("estimated_delivery_days") or 3),
            cost=float(data.get("cost") or estimate_cost(request.weight)),
            currency="ZAR",
        )
        point = data.get("collection_point")
        if request.collection_point_id and point:
            quote.collection_point = CollectionPointSummary(
                id=point.get("id"),
                name=point.get("name", ""),
                address=point.get("address", ""),
                city=point.get("city", ""),
                distance=point.get("distance_km"),
            )
        return quote

    async def create_waybill(self, request: WaybillRequest) -> Waybill:
        if not request.collection_point_id:
            raise ValidationError("Pargo requires a collection point id")
        data = await self._client.post_json(
            "/shipments",
            headers=self._headers(),
            json={
                "reference": request.reference,
                "collection_point_id": request.collection_point_id,
                "recipient": {
                    "name": request.destination.name,
                    "email": request.destination.email,
                    "phone": request.destination.phone,
                },
                "sender": {
                    "name": request.origin.name,
                    "email": request.origin.email,
                    "phone": request.origin.phone,
                },
                "items": [
                    {
                        "description": item.description,
                        "quantity": item.quantity,
                        "weight": item.weight,
                        "value": item.value,
                    }
                    for item in request.items
                ],
            },
            operation="create_waybill",
        )
        number = data.get("tracking_number") or data.get("shipment_id")
        estimated = parse_timestamp(data.get("estimated_delivery_date"))
        return Waybill(
            waybill_number=number,
            tracking_url=data.get("tracking_url") or f"https://tracking.pargo.co.za/{number}",
            cost=float(data.get("cost") or 0),
            estimated_delivery=estimated or datetime.now(timezone.utc) + timedelta(days=3),
            provider=self.name,
        )

    async def get_tracking(self, waybill_number: str) -> Optional[TrackingInfo]:
        data = await self._client.get_json(
            f"/tracking/{waybill_number}", headers=self._headers(), operation="tracking"
        )
        return TrackingInfo(
            status=data.get("status") or "unknown",
            current_location=data.get("current_location"),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery_date")),
            history=[
                TrackingEvent(
                    status=event.get("status", ""),
                    timestamp=parse_timestamp(event.get("timestamp")),
                    location=event.get("location"),
                    notes=event.get("notes") or event.get("description"),
                )
                for event in data.get("tracking_history") or []
            ],
        )

    async def cancel_waybill(self, waybill_number: str, reason: Optional[str] = None) -> bool:
        try:
            await self._client.request(
                "POST",
                f"/shipments/{waybill_number}/cancel",
                headers=self._headers(),
                json={"reason": reason},
                operation="cancel_waybill",
            )
        except UpstreamError as e:
            logger.warning("Cancel of shipment %s rejected: %s", waybill_number, e)
            return False
        return True
