"""
Quote-to-order conversion.

Turns an ACCEPTED quote into exactly one PENDING order, then asks the
default payment gateway for a checkout link. The flow:

  1. Pre-flight: quote exists, is ACCEPTED, is unconverted, and a payment
     gateway is configured. Any failure here changes nothing.
  2. One transaction: insert the order (items, totals, first history row),
     link the quote with a guarded UPDATE, write the audit entry, commit.
  3. After commit: generate the checkout link.

Exactly-once guarantees:
  - The guarded UPDATE only matches an ACCEPTED quote whose
    ``converted_to_order_id`` is still NULL; losing a race rolls back.
  - ``orders.quote_id`` and ``quotes.converted_to_order_id`` are unique.

A checkout link failure in step 3 does not undo the order: it is reported
in ``payment_error`` and can be retried with ``regenerate_payment_link``.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.logger import log_event
from backoffice.engine.conversion_checks import check_convertible
from backoffice.engine.quotes import accept_quote, get_quote
from backoffice.errors import ConfigurationError, NotFoundError, StateError, capture, describe
from backoffice.models.enums import OrderStatus, PaymentStatus, QuoteStatus
from backoffice.models.records import Order, OrderItem, OrderStatusHistory, Quote
from backoffice.providers.payment.base import (
    PaymentCustomer,
    PaymentItem,
    PaymentProvider,
    PaymentRequest,
)
from backoffice.providers.registry import ProviderRegistry

logger = logging.getLogger("backoffice.conversion")


@dataclass
class ConversionResult:
    order_id: str
    order_number: str
    payment_url: Optional[str] = None
    payment_error: Optional[str] = None


def generate_order_number() -> str:
    return f"ORD-{int(time.time() * 1000)}-{uuid.uuid4().hex[:7].upper()}"


def _checkout_request(order: Order, site_url: str) -> PaymentRequest:
    site = site_url.rstrip("/")
    return PaymentRequest(
        amount=order.total,
        order_id=order.id,
        order_number=order.order_number,
        customer=PaymentCustomer(
            name=order.customer_name or "",
            email=order.customer_email or "",
            phone=order.customer_phone,
        ),
        items=[PaymentItem(name=i.product_name, quantity=i.quantity, price=i.unit_price) for i in order.items],
        return_url=f"{site}/checkout/success?payment_id={order.order_number}",
        cancel_url=f"{site}/checkout/cancel",
    )


async def _checkout_link(provider: PaymentProvider, order: Order, site_url: str) -> tuple[Optional[str], Optional[str]]:
    outcome = await capture(provider.name, provider.initiate_payment(_checkout_request(order, site_url)))
    if not outcome.ok:
        logger.warning(
            "Checkout link for order %s via %s failed: %s",
            order.order_number,
            provider.name,
            describe(outcome.error),
        )
        return None, describe(outcome.error)
    return outcome.value.redirect_url, None


async def convert_quote_to_order(
    session: AsyncSession,
    quote_id: str,
    payments: ProviderRegistry[PaymentProvider],
    *,
    site_url: str,
    user_id: Optional[str] = None,
) -> ConversionResult:
    """
    Convert an accepted quote into an order and a checkout link.

    Raises:
        NotFoundError: Unknown quote.
        StateError: Not ACCEPTED, or already converted.
        ConfigurationError: No payment gateway is configured.
    """
    quote = await get_quote(session, quote_id)
    if quote is None:
        raise NotFoundError(f"Quote not found: {quote_id}")

    check = check_convertible(quote)
    if not check.convertible:
        raise StateError(check.message)

    provider = payments.get_default()
    if provider is None:
        raise ConfigurationError("No payment provider is configured; cannot generate a checkout link")

    quote_number = quote.quote_number
    now = datetime.now(timezone.utc)
    order = Order(
        order_number=generate_order_number(),
        quote_id=quote.id,
        user_id=user_id,
        customer_name=quote.customer_name,
        customer_email=quote.customer_email,
        customer_phone=quote.customer_phone,
        status=OrderStatus.PENDING.value,
        payment_status=PaymentStatus.PENDING.value,
        payment_method="QUOTE",
        subtotal=quote.subtotal,
        vat_amount=quote.vat_amount,
        shipping_cost=0.0,
        total=quote.total,
        notes=f"Converted from quote {quote_number}",
        items=[
            OrderItem(
                product_id=item.product_id,
                product_name=item.product_name,
                product_sku=item.product_sku or "",
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for item in quote.items
        ],
    )

    try:
        session.add(order)
        await session.flush()

        linked = await session.execute(
            update(Quote)
            .where(
                Quote.id == quote.id,
                Quote.status == QuoteStatus.ACCEPTED.value,
                Quote.converted_to_order_id.is_(None),
            )
            .values(converted_to_order_id=order.id, accepted_at=now)
        )
        if linked.rowcount != 1:
            raise StateError(f"Quote {quote_number} was converted or changed concurrently")

        session.add(
            OrderStatusHistory(
                order_id=order.id,
                status=OrderStatus.PENDING.value,
                notes=f"Order created from quote {quote_number}",
            )
        )
        await log_event(
            session,
            "quote_converted",
            entity_type="quote",
            entity_id=quote.id,
            details={
                "quote_number": quote_number,
                "order_id": order.id,
                "order_number": order.order_number,
                "total": order.total,
            },
        )
        await session.commit()
    except StateError:
        await session.rollback()
        raise
    except IntegrityError as e:
        await session.rollback()
        raise StateError(f"Quote {quote_number} has already been converted to an order") from e

    logger.info("Converted quote %s to order %s", quote_number, order.order_number)

    payment_url, payment_error = await _checkout_link(provider, order, site_url)
    return ConversionResult(
        order_id=order.id,
        order_number=order.order_number,
        payment_url=payment_url,
        payment_error=payment_error,
    )


async def regenerate_payment_link(
    session: AsyncSession,
    order_id: str,
    payments: ProviderRegistry[PaymentProvider],
    site_url: str,
) -> ConversionResult:
    """
    Ask the default gateway for a fresh checkout link for an unpaid order.

    Raises:
        NotFoundError: Unknown order.
        StateError: The order is already paid (or refunded).
        ConfigurationError: No payment gateway is configured.
    """
    order = await session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")
    if order.payment_status in (PaymentStatus.PAID.value, PaymentStatus.REFUNDED.value):
        raise StateError(f"Order {order.order_number} is already paid")

    provider = payments.require_default()
    payment_url, payment_error = await _checkout_link(provider, order, site_url)
    return ConversionResult(
        order_id=order.id,
        order_number=order.order_number,
        payment_url=payment_url,
        payment_error=payment_error,
    )


async def accept_quote_and_convert(
    session: AsyncSession,
    quote_id: str,
    payments: ProviderRegistry[PaymentProvider],
    *,
    site_url: str,
    user_id: Optional[str] = None,
) -> ConversionResult:
    """Accept then convert. A failed conversion leaves the quote ACCEPTED and unconverted."""
    await accept_quote(session, quote_id)
    return await convert_quote_to_order(session, quote_id, payments, site_url=site_url, user_id=user_id)
