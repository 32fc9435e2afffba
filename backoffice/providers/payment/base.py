"""
Payment gateway interface.

Every gateway (PayFast, Paystack, the in-memory mock) implements this.
Gateways raise instead of returning failure flags:
  - ConfigurationError when credentials are missing
  - UpstreamError when the vendor call fails
  - SignatureError when a webhook cannot be authenticated
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from backoffice.models.enums import WebhookStatus


@dataclass
class PaymentCustomer:
    name: str
    email: str
    phone: Optional[str] = None

    def split_name(self) -> tuple[str, str]:
        """First word is the first name; the rest is the last name."""
        parts = (self.name or "").split(" ")
        return parts[0], " ".join(parts[1:])


@dataclass
class PaymentItem:
    name: str
    quantity: int
    price: float


@dataclass
class PaymentRequest:
    """Request to start a hosted checkout for one order."""

    amount: float
    order_id: str
    order_number: str  # Shown to the gateway as the merchant payment reference
    customer: PaymentCustomer
    items: list[PaymentItem]
    return_url: str
    cancel_url: str
    currency: str = "ZAR"
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PaymentResult:
    payment_id: str
    redirect_url: str


@dataclass
class RefundRequest:
    payment_id: str
    amount: Optional[float] = None  # None means a full refund
    reason: Optional[str] = None


@dataclass
class RefundResult:
    refund_id: Optional[str]
    amount: Optional[float] = None


@dataclass
class AmountLimits:
    min: float
    max: float
    currency: str


@dataclass
class WebhookDelivery:
    """
    One inbound gateway notification.

    ``params`` is the decoded body (form fields or JSON object). ``raw_body``
    is kept for gateways that sign the exact bytes they sent. ``signature``
    carries a header-borne signature when the gateway uses one.
    """

    params: dict[str, Any]
    raw_body: bytes = b""
    signature: Optional[str] = None


@dataclass
class WebhookResult:
    """Gateway-neutral view of a payment notification."""

    success: bool
    status: WebhookStatus
    payment_id: Optional[str] = None
    order_id: Optional[str] = None  # The order number the checkout was started with
    amount: Optional[float] = None
    error: Optional[str] = None


class PaymentProvider(ABC):
    """Abstract base class for payment gateways."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider identifier (e.g. 'payfast')."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str: ...

    @abstractmethod
    def is_configured(self) -> bool:
        """True when every credential the gateway needs is present."""
        ...

    @abstractmethod
    async def initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        """Start a checkout and return where to send the customer."""
        ...

    @abstractmethod
    async def process_webhook(self, delivery: WebhookDelivery) -> WebhookResult:
        """
        Authenticate and normalize a gateway notification.

        Raises:
            SignatureError: Signature missing or mismatched.
        """
        ...

    @abstractmethod
    def verify_webhook_signature(self, delivery: WebhookDelivery) -> bool: ...

    @abstractmethod
    async def process_refund(self, request: RefundRequest) -> RefundResult: ...

    @abstractmethod
    def supported_payment_methods(self) -> list[str]: ...

    def amount_limits(self) -> AmountLimits:
        return AmountLimits(min=0.01, max=1_000_000, currency="ZAR")
