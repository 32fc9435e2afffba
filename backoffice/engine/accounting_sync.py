"""
Push orders into the accounting backend.

For one order:

  1. Resolve the backend: the one that already holds the order's invoice,
     otherwise the connected backend the selection rules prefer
  2. First sync only: upsert the customer contact, create the invoice from
     the order lines, remember the invoice id on the order
  3. Once the order is PAID: record the payment against that invoice, once

Each step commits on its own, so a backend failure after the invoice was
created does not lose the invoice id; the next sync picks up from there.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.logger import log_event
from backoffice.errors import ConfigurationError, NotFoundError, Outcome, capture, describe
from backoffice.models.enums import PaymentStatus
from backoffice.models.records import Order, as_utc
from backoffice.providers.accounting.base import (
    AccountingProvider,
    ContactRequest,
    InvoiceLine,
    InvoicePayment,
    InvoiceRequest,
)
from backoffice.providers.accounting.selection import resolve_connected_accounting_provider
from backoffice.providers.registry import ProviderRegistry

logger = logging.getLogger("backoffice.accounting")

VAT_RATE_PERCENT = 15.0


@dataclass
class AccountingSyncResult:
    order_id: str
    backend: str
    invoice_id: str
    invoice_created: bool = False
    payment_id: Optional[str] = None


async def _backend_for(order: Order, accounting: ProviderRegistry[AccountingProvider]) -> AccountingProvider:
    if order.accounting_backend:
        backend = accounting.require(order.accounting_backend)
    else:
        backend = await resolve_connected_accounting_provider(accounting)
        if backend is None:
            raise ConfigurationError("No accounting backend is configured")
    if not await backend.is_connected():
        raise ConfigurationError(f"{backend.display_name} is not connected", provider=backend.name)
    return backend


def _invoice_request(order: Order, invoice_date: date) -> InvoiceRequest:
    return InvoiceRequest(
        order_id=order.id,
        order_number=order.order_number,
        customer_name=order.customer_name or order.order_number,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        items=[
            InvoiceLine(
                name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate=VAT_RATE_PERCENT,
            )
            for item in order.items
        ],
        subtotal=order.subtotal,
        tax=order.vat_amount,
        total=order.total,
        invoice_date=invoice_date,
        reference=order.order_number,
    )


async def sync_order_to_accounting(
    session: AsyncSession,
    order_id: str,
    accounting: ProviderRegistry[AccountingProvider],
) -> AccountingSyncResult:
    """
    Create the order's invoice (first call) and record its payment (once PAID).

    Safe to call repeatedly: neither the invoice nor the payment is sent twice.

    Raises:
        NotFoundError: Unknown order.
        ConfigurationError: No connected accounting backend.
        UpstreamError: The backend rejected a call.
    """
    order = await session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")

    backend = await _backend_for(order, accounting)
    created_on = as_utc(order.created_at) or datetime.now(timezone.utc)
    invoice_created = False

    if not order.accounting_invoice_id:
        contact_id = await backend.create_or_update_contact(
            ContactRequest(
                name=order.customer_name or order.order_number,
                email=order.customer_email,
                phone=order.customer_phone,
            )
        )
        invoice = await backend.create_invoice(_invoice_request(order, created_on.date()))
        order.accounting_backend = backend.name
        order.accounting_invoice_id = invoice.invoice_id
        await log_event(
            session,
            "accounting_invoice_created",
            entity_type="order",
            entity_id=order.id,
            details={
                "backend": backend.name,
                "order_number": order.order_number,
                "contact_id": contact_id,
                "invoice_id": invoice.invoice_id,
                "invoice_number": invoice.invoice_number,
                "total": order.total,
            },
        )
        await session.commit()
        invoice_created = True
        logger.info("Invoice %s created in %s for order %s", invoice.invoice_id, backend.name, order.order_number)

    if order.payment_status == PaymentStatus.PAID.value and not order.accounting_payment_id:
        payment_id = await backend.record_payment(
            InvoicePayment(
                invoice_id=order.accounting_invoice_id,
                amount=order.total,
                payment_date=datetime.now(timezone.utc).date(),
                payment_method=order.payment_provider,
                reference=f"{order.payment_provider or 'payment'}: {order.payment_reference or order.order_number}",
            )
        )
        order.accounting_payment_id = payment_id
        await log_event(
            session,
            "accounting_payment_recorded",
            entity_type="order",
            entity_id=order.id,
            details={
                "backend": backend.name,
                "invoice_id": order.accounting_invoice_id,
                "payment_id": payment_id,
                "amount": order.total,
            },
        )
        await session.commit()
        logger.info("Payment for order %s recorded in %s", order.order_number, backend.name)

    return AccountingSyncResult(
        order_id=order.id,
        backend=backend.name,
        invoice_id=order.accounting_invoice_id,
        invoice_created=invoice_created,
        payment_id=order.accounting_payment_id,
    )


async def sync_paid_order(
    session: AsyncSession,
    order_number: str,
    accounting: ProviderRegistry[AccountingProvider],
) -> Optional[Outcome[AccountingSyncResult]]:
    """
    Best-effort sync after a payment notification.

    Returns None when there is nothing to do (no accounting backend
    configured, unknown or unpaid order).
    A backend failure is logged and handed back in the Outcome; the
    payment itself is already committed and is never undone by it.
    """
    if not accounting.get_configured():
        return None

    found = await session.execute(select(Order).where(Order.order_number == order_number))
    order = found.scalar_one_or_none()
    if order is None or order.payment_status != PaymentStatus.PAID.value:
        return None

    outcome = await capture("accounting", sync_order_to_accounting(session, order.id, accounting))
    if not outcome.ok:
        await session.rollback()
        logger.warning("Accounting sync for order %s failed: %s", order_number, describe(outcome.error))
    return outcome
