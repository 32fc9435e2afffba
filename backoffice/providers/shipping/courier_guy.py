"""
The Courier Guy adapter: door-to-door, up to 70 kg.

When the quote API is unreachable the carrier still answers with a rate-card
estimate so checkout can show a price.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional

from backoffice.errors import ConfigurationError, UpstreamError
from backoffice.providers.http import VendorClient, parse_timestamp
from backoffice.providers.shipping.base import (
    ShippingProvider,
    ShippingQuote,
    ShippingQuoteRequest,
    TrackingEvent,
    TrackingInfo,
    Waybill,
    WaybillRequest,
)

logger = logging.getLogger("backoffice.shipping.courier_guy")

BASE_COST = 50.0
PER_KG_COST = 15.0
INTER_PROVINCE_MULTIPLIER = 1.5


@dataclass
class CourierGuyConfig:
    api_key: str
    api_url: str = "https://api.thecourierguy.co.za"


class CourierGuyProvider(ShippingProvider):
    def __init__(self, config: CourierGuyConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.api_url, provider="courier-guy", timeout=timeout)

    @property
    def name(self) -> str:
        return "courier-guy"

    @property
    def display_name(self) -> str:
        return "The Courier Guy"

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    def max_weight(self) -> float:
        return 70

    def supported_service_types(self) -> list[str]:
        return ["standard", "express", "overnight"]

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("The Courier Guy API key is not configured", provider=self.name)
        return {"Authorization": f"Bearer {self.config.api_key}"}

    def estimate(self, request: ShippingQuoteRequest) -> ShippingQuote:
        """Rate-card estimate used when the live quote is unavailable."""
        same_province = request.origin.province == request.destination.province
        multiplier = 1 if same_province else INTER_PROVINCE_MULTIPLIER
        cost = (BASE_COST + request.weight * PER_KG_COST) * multiplier
        return ShippingQuote(
            provider=self.name,
            service_type=request.service_type or "standard",
            estimated_days=3 if same_province else 5,
            cost=round(cost, 2),
            currency="ZAR",
        )

    async def get_quote(self, request: ShippingQuoteRequest) -> Optional[ShippingQuote]:
        headers = self._headers()
        try:
            data = await self._client.post_json(
                "/api/v1/quotes",
                headers=headers,
                json={
                    "origin": asdict(request.origin),
                    "destination": asdict(request.destination),
                    "weight": request.weight,
                    "dimensions": asdict(request.dimensions) if request.dimensions else None,
                    "service_type": request.service_type or "standard",
                },
                operation="quote",
            )
        except UpstreamError as e:
            logger.warning("Live quote failed, using estimate: %s", e)
            return self.estimate(request)

        return ShippingQuote(
            provider=self.name,
            service_type=data.get("service_type") or request.service_type or "standard",
            estimated_days=int(data.get("estimated_days") or 3),
            cost=float(data.get("cost") or 0),
            currency=data.get("currency") or "ZAR",
        )

    async def create_waybill(self, request: WaybillRequest) -> Waybill:
        data = await self._client.post_json(
            "/api/v1/waybills",
            headers=self._headers(),
            json={
                "origin": asdict(request.origin),
                "destination": asdict(request.destination),
                "items": [asdict(item) for item in request.items],
                "service_type": request.service_type,
                "reference": request.reference,
            },
            operation="create_waybill",
        )
        number = data["waybill_number"]
        return Waybill(
            waybill_number=number,
            tracking_url=data.get("tracking_url") or f"{self.config.api_url}/tracking/{number}",
            cost=float(data.get("cost") or 0),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
            provider=self.name,
        )

    async def get_tracking(self, waybill_number: str) -> Optional[TrackingInfo]:
        data = await self._client.get_json(
            f"/api/v1/tracking/{waybill_number}",
            headers=self._headers(),
            operation="tracking",
        )
        return TrackingInfo(
            status=data.get("status") or "unknown",
            current_location=data.get("current_location"),
            estimated_delivery=parse_timestamp(data.get("estimated_delivery")),
            history=[
                TrackingEvent(
                    status=event.get("status", ""),
                    timestamp=parse_timestamp(event.get("timestamp")),
                    location=event.get("location"),
                    notes=event.get("notes"),
                )
                for event in data.get("history") or []
            ],
        )

    async def cancel_waybill(self, waybill_number: str, reason: Optional[str] = None) -> bool:
        try:
            await self._client.request(
                "POST",
                f"/api/v1/waybills/{waybill_number}/cancel",
                headers=self._headers(),
                json={"reason": reason},
                operation="cancel_waybill",
            )
        except UpstreamError as e:
            logger.warning("Cancel of waybill %s rejected: %s", waybill_number, e)
            return False
        return True
