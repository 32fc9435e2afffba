"""
Multi-carrier shipping router.

Picks which carriers may price a shipment, asks them all at once, and
reduces the answers:

  1. Configured carriers only
  2. Drop carriers whose max weight is below the parcel weight
  3. Drop carriers that do not offer the requested service level
  4. Quote every survivor concurrently, each under its own timeout
  5. A carrier that errors, times out or declines is dropped and logged

Auto-selection (no carrier named by the caller):
  - Heavy parcels (over 20 kg) go to Courier Guy when it is configured
  - Collection-point deliveries go to Pargo when it is configured
  - Otherwise the registry default, falling back to the first configured
"""

import asyncio
import logging
from typing import Optional

from backoffice.errors import ConfigurationError, ValidationError, capture, describe
from backoffice.models.enums import QuotePreference, ServiceType
from backoffice.providers.registry import ProviderRegistry
from backoffice.providers.shipping.base import (
    CollectionPoint,
    ShippingProvider,
    ShippingQuote,
    ShippingQuoteRequest,
    TrackingInfo,
    Waybill,
    WaybillRequest,
)

logger = logging.getLogger("backoffice.shipping")

HEAVY_PARCEL_KG = 20
HEAVY_PARCEL_CARRIER = "courier-guy"
COLLECTION_POINT_CARRIER = "pargo"

SERVICE_TYPES = {s.value for s in ServiceType}


def validate_quote_request(request: ShippingQuoteRequest) -> None:
    """Reject a malformed quote request before any carrier is contacted."""
    errors = []
    for label, location in (("origin", request.origin), ("destination", request.destination)):
        if location is None:
            errors.append(f"{label} is required")
            continue
        for attr in ("city", "province", "postal_code"):
            if not getattr(location, attr, None):
                errors.append(f"{label}.{attr} is required")
    if request.weight is None or request.weight <= 0:
        errors.append("weight must be greater than 0")
    if request.dimensions is not None:
        d = request.dimensions
        if d.length < 0 or d.width < 0 or d.height < 0:
            errors.append("dimensions cannot be negative")
    if request.service_type and request.service_type not in SERVICE_TYPES:
        errors.append(f"unknown service type: {request.service_type}")
    if errors:
        raise ValidationError("Invalid shipping quote request", errors=errors)


class ShippingRouter:
    """Carrier selection and quote aggregation over one shipping registry."""

    def __init__(self, registry: ProviderRegistry[ShippingProvider], timeout: Optional[float] = None):
        self.registry = registry
        self.timeout = timeout

    def eligible_carriers(self, request: ShippingQuoteRequest) -> list[ShippingProvider]:
        carriers = []
        for carrier in self.registry.get_configured():
            if carrier.max_weight() < request.weight:
                logger.debug("%s skipped: %.1f kg over %.1f kg limit", carrier.name, request.weight, carrier.max_weight())
                continue
            if request.service_type and request.service_type not in carrier.supported_service_types():
                logger.debug("%s skipped: no %s service", carrier.name, request.service_type)
                continue
            carriers.append(carrier)
        return carriers

    async def get_all_quotes(self, request: ShippingQuoteRequest) -> list[ShippingQuote]:
        """
        Quote every eligible carrier concurrently.

        Raises:
            ValidationError: The request is malformed.
        """
        validate_quote_request(request)
        carriers = self.eligible_carriers(request)
        if not carriers:
            return []

        outcomes = await asyncio.gather(
            *(capture(c.name, c.get_quote(request), self.timeout) for c in carriers)
        )

        quotes = []
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning("Quote from %s dropped: %s", outcome.provider, describe(outcome.error))
            elif outcome.value is None:
                logger.warning("Quote from %s dropped: carrier declined", outcome.provider)
            else:
                quotes.append(outcome.value)

        logger.info(
            "Shipping quotes %s -> %s (%.1f kg): %d of %d carriers answered",
            request.origin.city,
            request.destination.city,
            request.weight,
            len(quotes),
            len(carriers),
        )
        return quotes

    async def get_best_quote(
        self, request: ShippingQuoteRequest, preference: str = QuotePreference.CHEAPEST.value
    ) -> Optional[ShippingQuote]:
        """Lowest cost (cheapest) or fewest days (fastest); ties keep the first seen."""
        try:
            preference = QuotePreference(preference)
        except ValueError:
            raise ValidationError(f"Unknown quote preference: {preference}") from None

        quotes = await self.get_all_quotes(request)
        if not quotes:
            return None

        if preference == QuotePreference.FASTEST:
            return min(quotes, key=lambda q: q.estimated_days)
        return min(quotes, key=lambda q: q.cost)

    def get_auto_provider(self, request: ShippingQuoteRequest) -> Optional[ShippingProvider]:
        """Choose a carrier when the caller did not name one."""
        return self._select(request.weight, request.collection_point_id)

    def _select(self, weight: float, collection_point_id: Optional[str]) -> Optional[ShippingProvider]:
        if weight > HEAVY_PARCEL_KG:
            heavy = self.registry.get(HEAVY_PARCEL_CARRIER)
            if heavy is not None and heavy.is_configured():
                return heavy

        if collection_point_id:
            points = self.registry.get(COLLECTION_POINT_CARRIER)
            if points is not None and points.is_configured():
                return points

        return self.registry.get_default()

    async def create_waybill(self, request: WaybillRequest, provider_name: Optional[str] = None) -> Waybill:
        """
        Book a shipment with the named carrier, or an auto-selected one.

        Raises:
            ConfigurationError: No usable carrier.
            UpstreamError: The carrier rejected the booking.
        """
        if provider_name:
            carrier = self.registry.require(provider_name)
        else:
            carrier = self._select(request.total_weight, request.collection_point_id)
            if carrier is None:
                raise ConfigurationError("No shipping provider is configured")

        waybill = await carrier.create_waybill(request)
        logger.info("Waybill %s created with %s for order %s", waybill.waybill_number, carrier.name, request.order_id)
        return waybill

    async def get_tracking(self, waybill_number: str, provider_name: Optional[str] = None) -> Optional[TrackingInfo]:
        """Track through the named carrier, or ask each configured carrier in turn."""
        if provider_name:
            return await self.registry.require(provider_name).get_tracking(waybill_number)

        for carrier in self.registry.get_configured():
            outcome = await capture(carrier.name, carrier.get_tracking(waybill_number), self.timeout)
            if not outcome.ok:
                logger.debug("Tracking lookup on %s failed: %s", carrier.name, describe(outcome.error))
                continue
            if outcome.value is not None:
                return outcome.value
        return None

    async def cancel_waybill(self, waybill_number: str, provider_name: str, reason: Optional[str] = None) -> bool:
        """
        Cancel a booked shipment with the carrier that issued it.

        Returns False when the carrier declines (already collected, unknown
        waybill). Raises ConfigurationError for an unknown or unconfigured carrier.
        """
        carrier = self.registry.require(provider_name)
        cancelled = await carrier.cancel_waybill(waybill_number, reason)
        if cancelled:
            logger.info("Waybill %s cancelled with %s", waybill_number, carrier.name)
        else:
            logger.warning("%s declined to cancel waybill %s", carrier.name, waybill_number)
        return cancelled

    async def search_collection_points(
        self,
        postal_code: str,
        city: Optional[str] = None,
        province: Optional[str] = None,
        radius_km: float = 10,
    ) -> list[CollectionPoint]:
        """Merge collection points from every carrier that has them, nearest first."""
        carriers = [c for c in self.registry.get_configured() if c.supports_collection_points()]
        if not carriers:
            return []

        outcomes = await asyncio.gather(
            *(
                capture(c.name, c.search_collection_points(postal_code, city, province, radius_km), self.timeout)
                for c in carriers
            )
        )

        points = []
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning("Collection point search on %s failed: %s", outcome.provider, describe(outcome.error))
                continue
            points.extend(outcome.value or [])

        points.sort(key=lambda p: (p.distance is None, p.distance or 0))
        return points
