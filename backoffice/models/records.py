"""SQLAlchemy models for quotes, orders, OAuth credentials and the audit trail."""

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; every stored timestamp is UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class Quote(Base):
    """
    A B2B sales quote.

    ``converted_to_order_id`` is written at most once, only while the quote
    is ACCEPTED, and never cleared. The status history is append-only.
    """

    __tablename__ = "quotes"

    id = Column(String(12), primary_key=True, default=_new_id)
    quote_number = Column(String(40), nullable=False, unique=True, index=True)
    customer_name = Column(String(200), nullable=False)
    customer_email = Column(String(200), nullable=False, index=True)
    customer_phone = Column(String(50), nullable=True)
    customer_company = Column(String(200), nullable=True)
    status = Column(String(10), nullable=False, default="DRAFT", index=True)
    subtotal = Column(Float, nullable=False, default=0.0)
    vat_amount = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)
    created_by_user_id = Column(String(50), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    converted_to_order_id = Column(String(12), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "QuoteItem",
        back_populates="quote",
        cascade="all, delete-orphan",
        order_by="QuoteItem.position",
        lazy="selectin",
    )
    status_history = relationship(
        "QuoteStatusHistory",
        back_populates="quote",
        order_by="QuoteStatusHistory.id",
        lazy="raise",
    )


class QuoteItem(Base):
    """One line on a quote, in the order the customer sees it."""

    __tablename__ = "quote_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(String(12), ForeignKey("quotes.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(String(50), nullable=True)
    product_name = Column(String(200), nullable=False)
    product_sku = Column(String(100), nullable=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    quote = relationship("Quote", back_populates="items")


class QuoteStatusHistory(Base):
    """
    Immutable record of one quote status transition.

    Rows are only ever inserted; the id gives the time order.
    """

    __tablename__ = "quote_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    quote_id = Column(String(12), ForeignKey("quotes.id"), nullable=False, index=True)
    status = Column(String(10), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    quote = relationship("Quote", back_populates="status_history")


class Order(Base):
    """
    An order. For quote conversions there is exactly one per source quote,
    enforced by the unique ``quote_id``.
    """

    __tablename__ = "orders"
    __table_args__ = (UniqueConstraint("quote_id", name="uq_order_quote"),)

    id = Column(String(12), primary_key=True, default=_new_id)
    order_number = Column(String(50), nullable=False, unique=True, index=True)
    quote_id = Column(String(12), ForeignKey("quotes.id"), nullable=True)
    user_id = Column(String(50), nullable=True)
    customer_name = Column(String(200), nullable=True)
    customer_email = Column(String(200), nullable=True)
    customer_phone = Column(String(50), nullable=True)

    status = Column(String(20), nullable=False, default="PENDING")
    payment_status = Column(String(20), nullable=False, default="PENDING")
    payment_method = Column(String(20), nullable=True)  # QUOTE, CARD, EFT
    payment_reference = Column(String(100), nullable=True)  # Gateway-side payment id
    payment_provider = Column(String(30), nullable=True)  # Gateway that confirmed the payment
    refunded_amount = Column(Float, nullable=False, default=0.0)

    accounting_backend = Column(String(30), nullable=True)
    accounting_invoice_id = Column(String(100), nullable=True)
    accounting_payment_id = Column(String(100), nullable=True)

    subtotal = Column(Float, nullable=False, default=0.0)
    vat_amount = Column(Float, nullable=False, default=0.0)
    shipping_cost = Column(Float, nullable=False, default=0.0)
    total = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    status_history = relationship(
        "OrderStatusHistory",
        back_populates="order",
        order_by="OrderStatusHistory.id",
        lazy="raise",
    )


class OrderItem(Base):
    """A line item copied onto an order."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(12), ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(String(50), nullable=True)
    product_name = Column(String(200), nullable=False)
    product_sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Float, nullable=False)
    total_price = Column(Float, nullable=False)

    order = relationship("Order", back_populates="items")


class OrderStatusHistory(Base):
    """Append-only order status / payment status log."""

    __tablename__ = "order_status_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(String(12), ForeignKey("orders.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)

    order = relationship("Order", back_populates="status_history")


class OAuthCredential(Base):
    """
    OAuth token set for one accounting backend.

    At most one row per backend has ``is_active`` set. Rows are deactivated,
    never deleted, so the history of connections stays auditable.
    """

    __tablename__ = "oauth_credentials"

    id = Column(Integer, primary_key=True, autoincrement=True)
    backend = Column(String(30), nullable=False, index=True)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    scope = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    last_refreshed_at = Column(DateTime(timezone=True), nullable=True)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)


class AuditLog(Base):
    """
    Immutable audit trail entry.

    Quote conversions, webhook deliveries (accepted or rejected) and
    credential lifecycle changes each get an entry. Append-only.
    """

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    entity_type = Column(String(30), nullable=True, index=True)  # quote, order, credential, webhook
    entity_id = Column(String(50), nullable=True, index=True)
    action = Column(String(50), nullable=False)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), default=_utcnow)
