"""
B2B quote management: creation, editing, status workflow, expiry sweep.

Status workflow:

    DRAFT -> SENT -> VIEWED -> ACCEPTED -> (converted to an order)
      |        |        |          |
      +--------+--------+----------+--> REJECTED
      +--------+--------+-------------> EXPIRED

  - Every real transition appends exactly one status history row.
  - Writing the current status again is a no-op.
  - REJECTED, EXPIRED and converted quotes are terminal.
  - An illegal transition raises StateError and changes nothing.
"""

import logging
import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.audit.logger import log_event
from backoffice.config import settings
from backoffice.errors import NotFoundError, StateError, ValidationError
from backoffice.models.enums import QuoteStatus
from backoffice.models.records import Quote, QuoteItem, QuoteStatusHistory

logger = logging.getLogger("backoffice.quotes")

_BASE36 = string.digits + string.ascii_uppercase

ALLOWED_TRANSITIONS: dict[QuoteStatus, set[QuoteStatus]] = {
    QuoteStatus.DRAFT: {
        QuoteStatus.SENT,
        QuoteStatus.VIEWED,
        QuoteStatus.ACCEPTED,
        QuoteStatus.REJECTED,
        QuoteStatus.EXPIRED,
    },
    QuoteStatus.SENT: {QuoteStatus.VIEWED, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.VIEWED: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.ACCEPTED: {QuoteStatus.REJECTED},  # Only while unconverted
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
}

EDITABLE_STATUSES = {QuoteStatus.DRAFT.value, QuoteStatus.SENT.value, QuoteStatus.VIEWED.value}
OPEN_STATUSES = EDITABLE_STATUSES


@dataclass
class QuoteItemInput:
    product_name: str
    quantity: int
    unit_price: float
    product_id: Optional[str] = None
    product_sku: Optional[str] = None
    description: Optional[str] = None


@dataclass
class QuoteInput:
    customer_name: str
    customer_email: str
    items: list[QuoteItemInput]
    customer_phone: Optional[str] = None
    customer_company: Optional[str] = None
    notes: Optional[str] = None
    expires_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None


@dataclass
class QuoteTotals:
    subtotal: float
    vat_amount: float
    total: float


@dataclass
class QuotePage:
    quotes: list[Quote] = field(default_factory=list)
    total: int = 0
    has_more: bool = False


def _base36(number: int) -> str:
    digits = ""
    while number:
        number, rem = divmod(number, 36)
        digits = _BASE36[rem] + digits
    return digits or "0"


def generate_quote_number() -> str:
    """QT-<base36 millisecond timestamp>-<4 random base36 chars>."""
    suffix = "".join(random.choices(_BASE36, k=4))
    return f"QT-{_base36(int(time.time() * 1000))}-{suffix}"


def _to_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def validate_items(items: list[QuoteItemInput]) -> None:
    if not items:
        raise ValidationError("A quote needs at least one item")
    errors = []
    for i, item in enumerate(items, start=1):
        if not item.product_name:
            errors.append(f"item {i}: product name is required")
        if item.quantity is None or item.quantity <= 0:
            errors.append(f"item {i}: quantity must be greater than 0")
        if item.unit_price is None or item.unit_price < 0:
            errors.append(f"item {i}: unit price cannot be negative")
    if errors:
        raise ValidationError("Invalid quote items", errors=errors)


def calculate_totals(items: list[QuoteItemInput], vat_rate: Optional[float] = None) -> QuoteTotals:
    """Subtotal, VAT and total, each rounded to cents."""
    rate = settings.vat_rate if vat_rate is None else vat_rate
    subtotal = sum(item.unit_price * item.quantity for item in items)
    vat_amount = subtotal * rate
    return QuoteTotals(
        subtotal=round(subtotal, 2),
        vat_amount=round(vat_amount, 2),
        total=round(subtotal + vat_amount, 2),
    )


def _build_items(items: list[QuoteItemInput]) -> list[QuoteItem]:
    return [
        QuoteItem(
            position=i,
            product_id=item.product_id,
            product_name=item.product_name,
            product_sku=item.product_sku,
            description=item.description,
            quantity=item.quantity,
            unit_price=item.unit_price,
            total_price=round(item.unit_price * item.quantity, 2),
        )
        for i, item in enumerate(items)
    ]


def _apply_totals(quote: Quote, totals: QuoteTotals) -> None:
    quote.subtotal = totals.subtotal
    quote.vat_amount = totals.vat_amount
    quote.total = totals.total


async def create_quote(session: AsyncSession, data: QuoteInput, vat_rate: Optional[float] = None) -> Quote:
    """
    Create a DRAFT quote with its first history entry.

    Raises:
        ValidationError: Missing customer details or invalid items.
    """
    if not data.customer_name or not data.customer_email:
        raise ValidationError("Customer name and email are required")
    validate_items(data.items)

    quote = Quote(
        quote_number=generate_quote_number(),
        customer_name=data.customer_name,
        customer_email=data.customer_email,
        customer_phone=data.customer_phone,
        customer_company=data.customer_company,
        status=QuoteStatus.DRAFT.value,
        notes=data.notes,
        expires_at=_to_utc(data.expires_at),
        created_by_user_id=data.created_by_user_id,
        items=_build_items(data.items),
    )
    _apply_totals(quote, calculate_totals(data.items, vat_rate))
    session.add(quote)
    await session.flush()

    session.add(QuoteStatusHistory(quote_id=quote.id, status=QuoteStatus.DRAFT.value, notes="Quote created"))
    await log_event(
        session,
        "quote_created",
        entity_type="quote",
        entity_id=quote.id,
        details={"quote_number": quote.quote_number, "total": quote.total},
    )
    await session.commit()
    logger.info("Created quote %s for %s (total %.2f)", quote.quote_number, quote.customer_email, quote.total)
    return quote


async def get_quote(session: AsyncSession, quote_id: str) -> Optional[Quote]:
    return await session.get(Quote, quote_id)


async def get_quote_by_number(session: AsyncSession, quote_number: str) -> Optional[Quote]:
    result = await session.execute(select(Quote).where(Quote.quote_number == quote_number))
    return result.scalar_one_or_none()


async def require_quote(session: AsyncSession, quote_id: str) -> Quote:
    quote = await get_quote(session, quote_id)
    if quote is None:
        raise NotFoundError(f"Quote not found: {quote_id}")
    return quote


async def load_quote_history(session: AsyncSession, quote_id: str) -> list[QuoteStatusHistory]:
    """Status history oldest first (explicit query; the relationship never lazy-loads)."""
    result = await session.execute(
        select(QuoteStatusHistory)
        .where(QuoteStatusHistory.quote_id == quote_id)
        .order_by(QuoteStatusHistory.id)
    )
    return list(result.scalars().all())


async def list_quotes(
    session: AsyncSession,
    status: Optional[str] = None,
    customer_email: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> QuotePage:
    conditions = []
    if status:
        conditions.append(Quote.status == status)
    if customer_email:
        conditions.append(Quote.customer_email == customer_email)

    total = await session.scalar(select(func.count()).select_from(Quote).where(*conditions))
    result = await session.execute(
        select(Quote)
        .where(*conditions)
        .order_by(Quote.created_at.desc(), Quote.id)
        .limit(limit)
        .offset(offset)
    )
    total = total or 0
    return QuotePage(quotes=list(result.scalars().all()), total=total, has_more=offset + limit < total)


async def update_quote(
    session: AsyncSession,
    quote_id: str,
    items: Optional[list[QuoteItemInput]] = None,
    notes: Optional[str] = None,
    expires_at: Optional[datetime] = None,
    vat_rate: Optional[float] = None,
) -> Quote:
    """
    Edit an open quote. Replacing the items recalculates the totals.

    Raises:
        NotFoundError: Unknown quote.
        StateError: The quote is no longer editable.
        ValidationError: Invalid replacement items.
    """
    quote = await require_quote(session, quote_id)
    if quote.status not in EDITABLE_STATUSES or quote.converted_to_order_id:
        raise StateError(f"Quote {quote.quote_number} cannot be edited in status {quote.status}")

    if items is not None:
        validate_items(items)
        quote.items.clear()
        quote.items.extend(_build_items(items))
        _apply_totals(quote, calculate_totals(items, vat_rate))
    if notes is not None:
        quote.notes = notes
    if expires_at is not None:
        quote.expires_at = _to_utc(expires_at)

    await session.commit()
    return quote


def _check_transition(quote: Quote, target: QuoteStatus) -> bool:
    """True when the transition is real, False for a same-status no-op."""
    current = QuoteStatus(quote.status)
    if current == target:
        return False
    if quote.converted_to_order_id:
        raise StateError(f"Quote {quote.quote_number} has been converted to an order")
    if target not in ALLOWED_TRANSITIONS[current]:
        raise StateError(f"Quote {quote.quote_number} cannot move from {current.value} to {target.value}")
    return True


async def transition(
    session: AsyncSession,
    quote: Quote,
    status: QuoteStatus | str,
    note: Optional[str] = None,
) -> bool:
    """
    Move a quote to ``status`` and record it. The caller commits.

    Returns False (and records nothing) when the quote is already there.

    Raises:
        StateError: The transition is not allowed.
    """
    target = QuoteStatus(status)
    if not _check_transition(quote, target):
        return False

    previous = quote.status
    quote.status = target.value
    if target == QuoteStatus.ACCEPTED:
        quote.accepted_at = datetime.now(timezone.utc)
    session.add(
        QuoteStatusHistory(quote_id=quote.id, status=target.value, notes=note or f"Status changed to {target.value}")
    )
    await log_event(
        session,
        "quote_status_changed",
        entity_type="quote",
        entity_id=quote.id,
        details={"from": previous, "to": target.value},
    )
    return True


async def set_quote_status(
    session: AsyncSession, quote_id: str, status: QuoteStatus | str, note: Optional[str] = None
) -> Quote:
    quote = await require_quote(session, quote_id)
    if await transition(session, quote, status, note):
        await session.commit()
    return quote


async def mark_sent(session: AsyncSession, quote_id: str) -> Quote:
    return await set_quote_status(session, quote_id, QuoteStatus.SENT, "Quote sent to customer")


async def mark_viewed(session: AsyncSession, quote_id: str) -> Quote:
    return await set_quote_status(session, quote_id, QuoteStatus.VIEWED, "Quote viewed by customer")


async def accept_quote(session: AsyncSession, quote_id: str) -> Quote:
    return await set_quote_status(session, quote_id, QuoteStatus.ACCEPTED, "Quote accepted")


async def reject_quote(session: AsyncSession, quote_id: str, reason: Optional[str] = None) -> Quote:
    note = f"Quote rejected: {reason}" if reason else "Quote rejected"
    return await set_quote_status(session, quote_id, QuoteStatus.REJECTED, note)


async def expire_quotes(session: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Expire every open quote whose expiry has passed, in one commit.

    Returns the number of quotes expired.
    """
    now = _to_utc(now) or datetime.now(timezone.utc)
    result = await session.execute(
        select(Quote).where(
            Quote.status.in_(OPEN_STATUSES),
            Quote.expires_at.is_not(None),
            Quote.expires_at < now,
        )
    )
    quotes = list(result.scalars().all())
    for quote in quotes:
        quote.status = QuoteStatus.EXPIRED.value
        session.add(
            QuoteStatusHistory(quote_id=quote.id, status=QuoteStatus.EXPIRED.value, notes="Quote expired automatically")
        )

    if quotes:
        await log_event(
            session,
            "quotes_expired",
            entity_type="quote",
            details={"count": len(quotes), "quote_numbers": [q.quote_number for q in quotes]},
        )
        await session.commit()
        logger.info("Expired %d quotes", len(quotes))
    return len(quotes)
