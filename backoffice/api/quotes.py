"""
Quote endpoints.

POST  /quotes                 - Create a DRAFT quote.
GET   /quotes                 - List quotes (status / customer filters, paged).
POST  /quotes/expire          - Run the expiry sweep now.
GET   /quotes/{id}            - Quote with items and status history.
PATCH /quotes/{id}            - Edit items / notes / expiry of an open quote.
POST  /quotes/{id}/status     - Move the quote through its workflow.
POST  /quotes/{id}/convert    - Convert an accepted quote into an order.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_registries
from backoffice.config import settings
from backoffice.database import get_session
from backoffice.engine.quote_conversion import accept_quote_and_convert, convert_quote_to_order
from backoffice.engine.quotes import (
    QuoteInput,
    QuoteItemInput,
    create_quote,
    expire_quotes,
    list_quotes,
    load_quote_history,
    require_quote,
    set_quote_status,
    update_quote,
)
from backoffice.models.enums import QuoteStatus
from backoffice.models.records import Quote, QuoteStatusHistory, as_utc
from backoffice.registries import Registries

router = APIRouter(prefix="/quotes", tags=["quotes"])


class QuoteItemBody(BaseModel):
    product_name: str
    quantity: int
    unit_price: float
    product_id: Optional[str] = None
    product_sku: Optional[str] = None
    description: Optional[str] = None


class QuoteCreateBody(BaseModel):
    customer_name: str
    customer_email: str
    customer_phone: Optional[str] = None
    customer_company: Optional[str] = None
    items: list[QuoteItemBody]
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


class QuoteUpdateBody(BaseModel):
    items: Optional[list[QuoteItemBody]] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None


class StatusBody(BaseModel):
    status: QuoteStatus
    note: Optional[str] = None


class ConvertBody(BaseModel):
    accept_first: bool = False
    user_id: Optional[str] = None


class QuoteItemOut(BaseModel):
    product_id: Optional[str]
    product_name: str
    product_sku: Optional[str]
    description: Optional[str]
    quantity: int
    unit_price: float
    total_price: float

    model_config = {"from_attributes": True}


class HistoryEntry(BaseModel):
    status: str
    notes: Optional[str]
    created_at: Optional[str]


class QuoteResponse(BaseModel):
    id: str
    quote_number: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    customer_company: Optional[str]
    status: str
    subtotal: float
    vat_amount: float
    total: float
    notes: Optional[str]
    expires_at: Optional[str]
    accepted_at: Optional[str]
    converted_to_order_id: Optional[str]
    created_at: Optional[str]
    items: list[QuoteItemOut]
    status_history: Optional[list[HistoryEntry]] = None


class QuoteListResponse(BaseModel):
    quotes: list[QuoteResponse]
    total: int
    has_more: bool


class ConversionResponse(BaseModel):
    order_id: str
    order_number: str
    payment_url: Optional[str]
    payment_error: Optional[str]


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = as_utc(value)
    return value.isoformat() if value else None


def _to_input(item: QuoteItemBody) -> QuoteItemInput:
    return QuoteItemInput(**item.model_dump())


def _quote_to_response(quote: Quote, history: Optional[list[QuoteStatusHistory]] = None) -> QuoteResponse:
    return QuoteResponse(
        id=quote.id,
        quote_number=quote.quote_number,
        customer_name=quote.customer_name,
        customer_email=quote.customer_email,
        customer_phone=quote.customer_phone,
        customer_company=quote.customer_company,
        status=quote.status,
        subtotal=quote.subtotal,
        vat_amount=quote.vat_amount,
        total=quote.total,
        notes=quote.notes,
        expires_at=_iso(quote.expires_at),
        accepted_at=_iso(quote.accepted_at),
        converted_to_order_id=quote.converted_to_order_id,
        created_at=_iso(quote.created_at),
        items=[QuoteItemOut.model_validate(item) for item in quote.items],
        status_history=(
            [HistoryEntry(status=h.status, notes=h.notes, created_at=_iso(h.created_at)) for h in history]
            if history is not None
            else None
        ),
    )


@router.post("", response_model=QuoteResponse, status_code=201)
async def create(body: QuoteCreateBody, session: AsyncSession = Depends(get_session)):
    quote = await create_quote(
        session,
        QuoteInput(
            customer_name=body.customer_name,
            customer_email=body.customer_email,
            customer_phone=body.customer_phone,
            customer_company=body.customer_company,
            items=[_to_input(item) for item in body.items],
            notes=body.notes,
            expires_at=body.expires_at,
            created_by_user_id=body.created_by_user_id,
        ),
    )
    history = await load_quote_history(session, quote.id)
    return _quote_to_response(quote, history)


@router.get("", response_model=QuoteListResponse)
async def list_all(
    status: Optional[QuoteStatus] = Query(None, description="Filter by status"),
    customer_email: Optional[str] = Query(None, description="Filter by customer e-mail"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    session: AsyncSession = Depends(get_session),
):
    page = await list_quotes(
        session,
        status=status.value if status else None,
        customer_email=customer_email,
        limit=limit,
        offset=offset,
    )
    return QuoteListResponse(
        quotes=[_quote_to_response(q) for q in page.quotes],
        total=page.total,
        has_more=page.has_more,
    )


@router.post("/expire")
async def expire(session: AsyncSession = Depends(get_session)):
    """Expiry sweep, for a scheduler to call."""
    return {"expired": await expire_quotes(session)}


@router.get("/{quote_id}", response_model=QuoteResponse)
async def get_one(quote_id: str, session: AsyncSession = Depends(get_session)):
    quote = await require_quote(session, quote_id)
    history = await load_quote_history(session, quote_id)
    return _quote_to_response(quote, history)


@router.patch("/{quote_id}", response_model=QuoteResponse)
async def edit(quote_id: str, body: QuoteUpdateBody, session: AsyncSession = Depends(get_session)):
    quote = await update_quote(
        session,
        quote_id,
        items=[_to_input(item) for item in body.items] if body.items is not None else None,
        notes=body.notes,
        expires_at=body.expires_at,
    )
    return _quote_to_response(quote)


@router.post("/{quote_id}/status", response_model=QuoteResponse)
async def change_status(quote_id: str, body: StatusBody, session: AsyncSession = Depends(get_session)):
    quote = await set_quote_status(session, quote_id, body.status, body.note)
    history = await load_quote_history(session, quote_id)
    return _quote_to_response(quote, history)


@router.post("/{quote_id}/convert", response_model=ConversionResponse)
async def convert(
    quote_id: str,
    body: Optional[ConvertBody] = None,
    session: AsyncSession = Depends(get_session),
    registries: Registries = Depends(get_registries),
):
    """
    Convert an accepted quote into a PENDING order and a checkout link.

    With ``accept_first`` the quote is accepted in the same call. A checkout
    link failure does not undo the order; it comes back as ``payment_error``.
    """
    body = body or ConvertBody()
    convert_fn = accept_quote_and_convert if body.accept_first else convert_quote_to_order
    result = await convert_fn(
        session,
        quote_id,
        registries.payment,
        site_url=settings.site_url,
        user_id=body.user_id,
    )
    return ConversionResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        payment_url=result.payment_url,
        payment_error=result.payment_error,
    )
