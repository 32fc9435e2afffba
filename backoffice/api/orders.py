"""
Order query, trace, refund and accounting endpoints.

GET  /orders/{id}                 - Order with items and status history.
GET  /orders/{id}/trace           - Audit trail for the order and its source quote.
POST /orders/{id}/payment-link    - Ask the default gateway for a fresh checkout link.
POST /orders/{id}/refund          - Refund all or part of a paid order through its gateway.
POST /orders/{id}/accounting-sync - Push the invoice (and payment, once paid) to accounting.
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_registries
from backoffice.config import settings
from backoffice.database import get_session
from backoffice.engine.accounting_sync import sync_order_to_accounting
from backoffice.engine.quote_conversion import regenerate_payment_link
from backoffice.engine.refunds import refund_order
from backoffice.models.records import AuditLog, Order, OrderStatusHistory, as_utc
from backoffice.registries import Registries

router = APIRouter(prefix="/orders", tags=["orders"])


class OrderItemOut(BaseModel):
    product_id: Optional[str]
    product_name: str
    product_sku: Optional[str]
    quantity: int
    unit_price: float
    total_price: float

    model_config = {"from_attributes": True}


class OrderHistoryEntry(BaseModel):
    status: str
    notes: Optional[str]
    created_at: Optional[str]


class OrderDetail(BaseModel):
    id: str
    order_number: str
    quote_id: Optional[str]
    customer_name: Optional[str]
    customer_email: Optional[str]
    status: str
    payment_status: str
    payment_method: Optional[str]
    payment_reference: Optional[str]
    payment_provider: Optional[str]
    refunded_amount: float
    accounting_invoice_id: Optional[str]
    subtotal: float
    vat_amount: float
    shipping_cost: float
    total: float
    notes: Optional[str]
    created_at: Optional[str]
    items: list[OrderItemOut]
    status_history: list[OrderHistoryEntry]


class AuditEntry(BaseModel):
    id: int
    entity_type: Optional[str]
    entity_id: Optional[str]
    action: str
    details: Optional[dict] = None
    timestamp: Optional[str]


class OrderTrace(BaseModel):
    order: OrderDetail
    audit_trail: list[AuditEntry]


class PaymentLinkResponse(BaseModel):
    order_id: str
    order_number: str
    payment_url: Optional[str]
    payment_error: Optional[str]


class RefundBody(BaseModel):
    amount: Optional[float] = None
    reason: Optional[str] = None


class RefundResponse(BaseModel):
    order_id: str
    order_number: str
    provider: str
    refund_id: Optional[str]
    amount: float
    refunded_total: float
    payment_status: str

    model_config = {"from_attributes": True}


class AccountingSyncResponse(BaseModel):
    order_id: str
    backend: str
    invoice_id: str
    invoice_created: bool
    payment_id: Optional[str]

    model_config = {"from_attributes": True}


async def _load_order(session: AsyncSession, order_id: str) -> Order:
    order = await session.get(Order, order_id)
    if not order:
        raise HTTPException(status_code=404, detail=f"Order not found: {order_id}")
    return order


async def _order_to_detail(session: AsyncSession, order: Order) -> OrderDetail:
    result = await session.execute(
        select(OrderStatusHistory)
        .where(OrderStatusHistory.order_id == order.id)
        .order_by(OrderStatusHistory.id)
    )
    history = result.scalars().all()
    created_at = as_utc(order.created_at)
    return OrderDetail(
        id=order.id,
        order_number=order.order_number,
        quote_id=order.quote_id,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        status=order.status,
        payment_status=order.payment_status,
        payment_method=order.payment_method,
        payment_reference=order.payment_reference,
        payment_provider=order.payment_provider,
        refunded_amount=order.refunded_amount or 0.0,
        accounting_invoice_id=order.accounting_invoice_id,
        subtotal=order.subtotal,
        vat_amount=order.vat_amount,
        shipping_cost=order.shipping_cost,
        total=order.total,
        notes=order.notes,
        created_at=created_at.isoformat() if created_at else None,
        items=[OrderItemOut.model_validate(item) for item in order.items],
        status_history=[
            OrderHistoryEntry(
                status=h.status,
                notes=h.notes,
                created_at=as_utc(h.created_at).isoformat() if h.created_at else None,
            )
            for h in history
        ],
    )


@router.get("/{order_id}", response_model=OrderDetail)
async def get_order(order_id: str, session: AsyncSession = Depends(get_session)):
    order = await _load_order(session, order_id)
    return await _order_to_detail(session, order)


@router.get("/{order_id}/trace", response_model=OrderTrace)
async def get_order_trace(order_id: str, session: AsyncSession = Depends(get_session)):
    """
    Full audit trail for an order.

    Includes the source quote's entries (creation, status changes,
    conversion) followed by the order's own (webhook deliveries).
    """
    order = await _load_order(session, order_id)

    conditions = [and_(AuditLog.entity_type == "order", AuditLog.entity_id == order.id)]
    if order.quote_id:
        conditions.append(and_(AuditLog.entity_type == "quote", AuditLog.entity_id == order.quote_id))

    result = await session.execute(
        select(AuditLog).where(or_(*conditions)).order_by(AuditLog.timestamp.asc(), AuditLog.id.asc())
    )

    audit_trail = []
    for log in result.scalars().all():
        details = None
        if log.details:
            try:
                details = json.loads(log.details)
            except (json.JSONDecodeError, TypeError):
                details = {"raw": log.details}
        timestamp = as_utc(log.timestamp)
        audit_trail.append(AuditEntry(
            id=log.id,
            entity_type=log.entity_type,
            entity_id=log.entity_id,
            action=log.action,
            details=details,
            timestamp=timestamp.isoformat() if timestamp else None,
        ))

    return OrderTrace(order=await _order_to_detail(session, order), audit_trail=audit_trail)


@router.post("/{order_id}/payment-link", response_model=PaymentLinkResponse)
async def payment_link(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    registries: Registries = Depends(get_registries),
):
    result = await regenerate_payment_link(session, order_id, registries.payment, settings.site_url)
    return PaymentLinkResponse(
        order_id=result.order_id,
        order_number=result.order_number,
        payment_url=result.payment_url,
        payment_error=result.payment_error,
    )


@router.post("/{order_id}/refund", response_model=RefundResponse)
async def refund(
    order_id: str,
    body: RefundBody,
    session: AsyncSession = Depends(get_session),
    registries: Registries = Depends(get_registries),
):
    result = await refund_order(session, order_id, registries.payment, amount=body.amount, reason=body.reason)
    return RefundResponse.model_validate(result)


@router.post("/{order_id}/accounting-sync", response_model=AccountingSyncResponse)
async def accounting_sync(
    order_id: str,
    session: AsyncSession = Depends(get_session),
    registries: Registries = Depends(get_registries),
):
    result = await sync_order_to_accounting(session, order_id, registries.accounting)
    return AccountingSyncResponse.model_validate(result)
