"""
Order refunds.

A refund goes back through the gateway that confirmed the payment, against
the gateway-side payment reference recorded by the webhook. Partial
refunds accumulate in ``refunded_amount``; the order's payment status moves
to REFUNDED once the whole total has been returned. The gateway is called
before anything is written, so a rejected refund leaves the order as it was.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.logger import log_event
from backoffice.errors import NotFoundError, StateError, ValidationError
from backoffice.models.enums import PaymentStatus
from backoffice.models.records import Order, OrderStatusHistory
from backoffice.providers.payment.base import PaymentProvider, RefundRequest
from backoffice.providers.registry import ProviderRegistry

logger = logging.getLogger("backoffice.refunds")


@dataclass
class OrderRefund:
    order_id: str
    order_number: str
    provider: str
    refund_id: Optional[str]
    amount: float
    refunded_total: float
    payment_status: str


def _gateway_for(order: Order, payments: ProviderRegistry[PaymentProvider]) -> PaymentProvider:
    if order.payment_provider:
        return payments.require(order.payment_provider)
    return payments.require_default()


async def refund_order(
    session: AsyncSession,
    order_id: str,
    payments: ProviderRegistry[PaymentProvider],
    amount: Optional[float] = None,
    reason: Optional[str] = None,
) -> OrderRefund:
    """
    Refund all or part of a paid order.

    ``amount`` defaults to whatever has not been refunded yet.

    Raises:
        NotFoundError: Unknown order.
        StateError: Order is not PAID or has no gateway payment reference.
        ValidationError: Amount is not positive or exceeds the refundable balance.
        ConfigurationError: The gateway that took the payment is unavailable.
        UpstreamError: The gateway declined the refund.
    """
    order = await session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")
    if order.payment_status != PaymentStatus.PAID.value:
        raise StateError(f"Order {order.order_number} is not paid (payment status {order.payment_status})")
    if not order.payment_reference:
        raise StateError(f"Order {order.order_number} has no gateway payment reference")

    refundable = round(order.total - (order.refunded_amount or 0.0), 2)
    if amount is None:
        amount = refundable
    if amount <= 0:
        raise ValidationError("Refund amount must be greater than 0")
    if amount > refundable:
        raise ValidationError(f"Refund amount {amount:.2f} exceeds refundable balance {refundable:.2f}")

    gateway = _gateway_for(order, payments)
    full = amount == order.total
    result = await gateway.process_refund(
        RefundRequest(payment_id=order.payment_reference, amount=None if full else amount, reason=reason)
    )

    order.refunded_amount = round((order.refunded_amount or 0.0) + amount, 2)
    if order.refunded_amount >= order.total:
        order.payment_status = PaymentStatus.REFUNDED.value

    session.add(
        OrderStatusHistory(
            order_id=order.id,
            status=order.status,
            notes=f"Refund R{amount:.2f} via {gateway.name}"
            + (f" (ref {result.refund_id})" if result.refund_id else "")
            + (f": {reason}" if reason else ""),
        )
    )
    await log_event(
        session,
        "order_refunded",
        entity_type="order",
        entity_id=order.id,
        details={
            "provider": gateway.name,
            "order_number": order.order_number,
            "refund_id": result.refund_id,
            "amount": amount,
            "refunded_total": order.refunded_amount,
            "payment_status": order.payment_status,
            "reason": reason,
        },
    )
    await session.commit()
    logger.info("Refunded R%.2f on order %s via %s", amount, order.order_number, gateway.name)

    return OrderRefund(
        order_id=order.id,
        order_number=order.order_number,
        provider=gateway.name,
        refund_id=result.refund_id,
        amount=amount,
        refunded_total=order.refunded_amount,
        payment_status=order.payment_status,
    )
