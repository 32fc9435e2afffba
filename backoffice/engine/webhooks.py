"""
Payment webhook ingestion.

Each gateway notification goes through:

  1. Resolve the named gateway (must be registered and configured)
  2. Authenticate and normalize it (the gateway verifies its own signature)
  3. Apply it to the matching order: payment status, gateway reference,
     PENDING -> PROCESSING on success, one status history row
  4. Audit every outcome: processed, stale, unmatched, or rejected

A rejected signature changes no order; only the ``webhook_rejected`` audit
entry is committed before the error propagates. Redelivering the same
payment status for the same order is acknowledged without a second history
row. A settled payment (PAID or REFUNDED) is never moved by a later
notification: a late or replayed PENDING/FAILED/CANCELLED is acknowledged
and audited as ``webhook_stale``.
"""

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.logger import log_event
from backoffice.errors import SignatureError
from backoffice.models.enums import OrderStatus, PaymentStatus, WebhookStatus
from backoffice.models.records import Order, OrderStatusHistory
from backoffice.providers.payment.base import PaymentProvider, WebhookDelivery, WebhookResult
from backoffice.providers.registry import ProviderRegistry

logger = logging.getLogger("backoffice.webhooks")

PAYMENT_STATUS_FOR = {
    WebhookStatus.SUCCESS: PaymentStatus.PAID,
    WebhookStatus.FAILED: PaymentStatus.FAILED,
    WebhookStatus.CANCELLED: PaymentStatus.CANCELLED,
    WebhookStatus.PENDING: PaymentStatus.PENDING,
}

SETTLED_PAYMENT_STATUSES = {PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value}

__all__ = ["WebhookDelivery", "WebhookResult", "ingest_payment_webhook", "apply_to_order", "is_stale"]


def is_stale(order: Order, result: WebhookResult) -> bool:
    """True when the order's payment is settled and the notification reports something else."""
    payment_status = PAYMENT_STATUS_FOR[WebhookStatus(result.status)]
    return order.payment_status in SETTLED_PAYMENT_STATUSES and order.payment_status != payment_status.value


async def apply_to_order(session: AsyncSession, order: Order, result: WebhookResult, provider_name: str) -> bool:
    """
    Record a normalized notification on its order. The caller commits.

    Returns False when the order already carries this payment status, or
    when its payment is settled and the notification would move it.
    """
    payment_status = PAYMENT_STATUS_FOR[WebhookStatus(result.status)]
    if order.payment_status == payment_status.value or is_stale(order, result):
        return False

    previous = order.payment_status
    order.payment_status = payment_status.value
    order.payment_provider = provider_name
    if result.payment_id:
        order.payment_reference = result.payment_id
    if payment_status == PaymentStatus.PAID and order.status == OrderStatus.PENDING.value:
        order.status = OrderStatus.PROCESSING.value

    session.add(
        OrderStatusHistory(
            order_id=order.id,
            status=order.status,
            notes=f"Payment {payment_status.value} via {provider_name}"
            + (f" (ref {result.payment_id})" if result.payment_id else ""),
        )
    )
    await log_event(
        session,
        "webhook_processed",
        entity_type="order",
        entity_id=order.id,
        details={
            "provider": provider_name,
            "order_number": order.order_number,
            "payment_status": {"from": previous, "to": payment_status.value},
            "payment_id": result.payment_id,
            "amount": result.amount,
        },
    )
    return True


async def ingest_payment_webhook(
    session: AsyncSession,
    registry: ProviderRegistry[PaymentProvider],
    provider_name: str,
    delivery: WebhookDelivery,
) -> WebhookResult:
    """
    Authenticate a gateway notification and apply it to its order.

    Raises:
        ConfigurationError: Gateway not registered or not configured.
        SignatureError: Signature missing or mismatched (audit entry committed).
        ValidationError: The gateway could not make sense of the payload.
    """
    provider = registry.require(provider_name)

    try:
        result = await provider.process_webhook(delivery)
    except SignatureError as e:
        logger.warning("Rejected %s webhook: %s", provider_name, e)
        await log_event(
            session,
            "webhook_rejected",
            entity_type="webhook",
            entity_id=provider_name,
            details={"error": str(e), "fields": sorted(delivery.params)},
        )
        await session.commit()
        raise

    order = None
    if result.order_id:
        found = await session.execute(select(Order).where(Order.order_number == result.order_id))
        order = found.scalar_one_or_none()

    if order is None:
        logger.warning("%s webhook for unknown order %s", provider_name, result.order_id)
        await log_event(
            session,
            "webhook_unmatched",
            entity_type="webhook",
            entity_id=provider_name,
            details={"order_id": result.order_id, "payment_id": result.payment_id, "status": result.status},
        )
        await session.commit()
        return result

    if is_stale(order, result):
        reported = WebhookStatus(result.status).value
        logger.warning(
            "%s webhook: order %s is %s, ignoring late %s notification",
            provider_name,
            order.order_number,
            order.payment_status,
            reported,
        )
        await log_event(
            session,
            "webhook_stale",
            entity_type="order",
            entity_id=order.id,
            details={
                "provider": provider_name,
                "order_number": order.order_number,
                "payment_status": order.payment_status,
                "reported_status": reported,
                "payment_id": result.payment_id,
            },
        )
        await session.commit()
        return result

    if await apply_to_order(session, order, result, provider_name):
        await session.commit()
        logger.info(
            "%s webhook: order %s payment %s",
            provider_name,
            order.order_number,
            order.payment_status,
        )
    else:
        logger.info("%s webhook: order %s already %s, ignored", provider_name, order.order_number, order.payment_status)
    return result
