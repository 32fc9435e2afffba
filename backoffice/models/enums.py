"""Enumerations for the back-office domain model."""

from enum import Enum


class QuoteStatus(str, Enum):
    """Lifecycle states for a B2B sales quote. Persisted verbatim."""

    DRAFT = "DRAFT"
    SENT = "SENT"
    VIEWED = "VIEWED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"


class OrderStatus(str, Enum):
    """Lifecycle states for an order (only the subset this service writes)."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    CANCELLED = "CANCELLED"


class PaymentStatus(str, Enum):
    """Payment state recorded on an order from gateway notifications."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


class WebhookStatus(str, Enum):
    """Normalized status reported by every payment backend's webhook."""

    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class ServiceType(str, Enum):
    """Shipping service levels a quote request may ask for."""

    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


class QuotePreference(str, Enum):
    """How the shipping router ranks competing quotes."""

    CHEAPEST = "cheapest"
    FASTEST = "fastest"


class ConversionBlock(str, Enum):
    """Categorized reasons a quote cannot be converted to an order."""

    NOT_ACCEPTED = "not_accepted"
    ALREADY_CONVERTED = "already_converted"


class ProviderDomain(str, Enum):
    """Integration domains that each own a provider registry."""

    PAYMENT = "payment"
    SHIPPING = "shipping"
    MARKETPLACE = "marketplace"
    ACCOUNTING = "accounting"
    SUPPLIER = "supplier"
