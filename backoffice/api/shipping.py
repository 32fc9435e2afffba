"""
Shipping endpoints.

POST /shipping/quotes                - Quotes from every eligible carrier.
POST /shipping/quotes/best           - Single best quote (cheapest / fastest).
GET  /shipping/collection-points     - Collection points near a postal code.
POST /shipping/waybills              - Book a shipment (named or auto-selected carrier).
GET  /shipping/tracking/{waybill}    - Tracking for a waybill.
POST /shipping/waybills/{n}/cancel   - Cancel a booked shipment with its carrier.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from backoffice.api.deps import get_registries
from backoffice.models.enums import QuotePreference
from backoffice.providers.shipping.base import (
    Address,
    Dimensions,
    Location,
    ShippingQuoteRequest,
    WaybillItem,
    WaybillRequest,
)
from backoffice.registries import Registries

router = APIRouter(prefix="/shipping", tags=["shipping"])


class LocationBody(BaseModel):
    city: str
    province: str
    postal_code: str


class DimensionsBody(BaseModel):
    length: float
    width: float
    height: float


class ShippingQuoteBody(BaseModel):
    origin: LocationBody
    destination: LocationBody
    weight: float
    dimensions: Optional[DimensionsBody] = None
    service_type: Optional[str] = None
    collection_point_id: Optional[str] = None

    def to_request(self) -> ShippingQuoteRequest:
        return ShippingQuoteRequest(
            origin=Location(**self.origin.model_dump()),
            destination=Location(**self.destination.model_dump()),
            weight=self.weight,
            dimensions=Dimensions(**self.dimensions.model_dump()) if self.dimensions else None,
            service_type=self.service_type,
            collection_point_id=self.collection_point_id,
        )


class CollectionPointSummaryOut(BaseModel):
    id: str
    name: str
    address: str
    city: str
    distance: Optional[float] = None

    model_config = {"from_attributes": True}


class ShippingQuoteOut(BaseModel):
    provider: str
    service_type: str
    estimated_days: int
    cost: float
    currency: str
    collection_point: Optional[CollectionPointSummaryOut] = None

    model_config = {"from_attributes": True}


class CollectionPointOut(BaseModel):
    id: str
    name: str
    address: str
    city: str
    province: str
    postal_code: str
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    distance: Optional[float] = None
    hours: Optional[str] = None
    phone: Optional[str] = None

    model_config = {"from_attributes": True}


class AddressBody(BaseModel):
    name: str
    address: str
    city: str
    province: str
    postal_code: str
    phone: str = ""
    email: str = ""


class WaybillItemBody(BaseModel):
    description: str
    quantity: int
    weight: float
    value: float


class WaybillBody(BaseModel):
    order_id: str
    origin: AddressBody
    destination: AddressBody
    items: list[WaybillItemBody]
    reference: str
    service_type: str = "standard"
    collection_point_id: Optional[str] = None
    provider: Optional[str] = None


class WaybillOut(BaseModel):
    waybill_number: str
    tracking_url: str
    cost: float
    estimated_delivery: Optional[datetime]
    provider: str

    model_config = {"from_attributes": True}


class TrackingEventOut(BaseModel):
    status: str
    timestamp: Optional[datetime]
    location: Optional[str] = None
    notes: Optional[str] = None

    model_config = {"from_attributes": True}


class TrackingOut(BaseModel):
    status: str
    current_location: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    history: list[TrackingEventOut]

    model_config = {"from_attributes": True}


@router.post("/quotes", response_model=list[ShippingQuoteOut])
async def all_quotes(body: ShippingQuoteBody, registries: Registries = Depends(get_registries)):
    quotes = await registries.shipping_router.get_all_quotes(body.to_request())
    return [ShippingQuoteOut.model_validate(q) for q in quotes]


@router.post("/quotes/best", response_model=Optional[ShippingQuoteOut])
async def best_quote(
    body: ShippingQuoteBody,
    preference: QuotePreference = Query(QuotePreference.CHEAPEST),
    registries: Registries = Depends(get_registries),
):
    quote = await registries.shipping_router.get_best_quote(body.to_request(), preference.value)
    return ShippingQuoteOut.model_validate(quote) if quote else None


@router.get("/collection-points", response_model=list[CollectionPointOut])
async def collection_points(
    postal_code: str = Query(..., description="Postal code to search around"),
    city: Optional[str] = Query(None),
    province: Optional[str] = Query(None),
    radius_km: float = Query(10, gt=0, le=100),
    registries: Registries = Depends(get_registries),
):
    points = await registries.shipping_router.search_collection_points(postal_code, city, province, radius_km)
    return [CollectionPointOut.model_validate(p) for p in points]


@router.post("/waybills", response_model=WaybillOut, status_code=201)
async def create_waybill(body: WaybillBody, registries: Registries = Depends(get_registries)):
    request = WaybillRequest(
        order_id=body.order_id,
        origin=Address(**body.origin.model_dump()),
        destination=Address(**body.destination.model_dump()),
        items=[WaybillItem(**item.model_dump()) for item in body.items],
        reference=body.reference,
        service_type=body.service_type,
        collection_point_id=body.collection_point_id,
    )
    waybill = await registries.shipping_router.create_waybill(request, body.provider)
    return WaybillOut.model_validate(waybill)


@router.get("/tracking/{waybill_number}", response_model=TrackingOut)
async def tracking(
    waybill_number: str,
    provider: Optional[str] = Query(None, description="Carrier that issued the waybill"),
    registries: Registries = Depends(get_registries),
):
    info = await registries.shipping_router.get_tracking(waybill_number, provider)
    if info is None:
        raise HTTPException(status_code=404, detail=f"No tracking found for waybill {waybill_number}")
    return TrackingOut.model_validate(info)


class CancelWaybillBody(BaseModel):
    provider: str
    reason: Optional[str] = None


@router.post("/waybills/{waybill_number}/cancel")
async def cancel_waybill(
    waybill_number: str,
    body: CancelWaybillBody,
    registries: Registries = Depends(get_registries),
):
    cancelled = await registries.shipping_router.cancel_waybill(waybill_number, body.provider, body.reason)
    if not cancelled:
        raise HTTPException(status_code=409, detail=f"{body.provider} did not cancel waybill {waybill_number}")
    return {"waybill_number": waybill_number, "provider": body.provider, "cancelled": True}
