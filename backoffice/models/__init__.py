from backoffice.models.enums import (
    ConversionBlock,
    OrderStatus,
    PaymentStatus,
    ProviderDomain,
    QuotePreference,
    QuoteStatus,
    ServiceType,
    WebhookStatus,
)
from backoffice.models.records import (
    AuditLog,
    Base,
    OAuthCredential,
    Order,
    OrderItem,
    OrderStatusHistory,
    Quote,
    QuoteItem,
    QuoteStatusHistory,
)

__all__ = [
    "Base",
    "Quote",
    "QuoteItem",
    "QuoteStatusHistory",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "OAuthCredential",
    "AuditLog",
    "ConversionBlock",
    "OrderStatus",
    "PaymentStatus",
    "ProviderDomain",
    "QuotePreference",
    "QuoteStatus",
    "ServiceType",
    "WebhookStatus",
]
