"""
Accounting backend interface.

Backends that sit behind OAuth (Xero) report ``is_configured`` from their
client credentials and ``is_connected`` from the credential manager; a
configured backend is not necessarily connected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass
class PostalAddress:
    street: str
    city: str
    province: str
    postal_code: str
    country: str = "South Africa"


@dataclass
class InvoiceLine:
    name: str
    quantity: int
    unit_price: float
    description: Optional[str] = None
    tax_rate: Optional[float] = None
    account_code: Optional[str] = None


@dataclass
class InvoiceRequest:
    order_id: str
    order_number: str
    customer_name: str
    items: list[InvoiceLine]
    subtotal: float
    tax: float
    total: float
    invoice_date: date
    currency: str = "ZAR"
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    due_date: Optional[date] = None
    reference: Optional[str] = None
    notes: Optional[str] = None


@dataclass
class InvoiceResult:
    invoice_id: str
    invoice_number: Optional[str] = None
    invoice_url: Optional[str] = None


@dataclass
class InvoicePayment:
    invoice_id: str
    amount: float
    payment_date: date
    payment_method: Optional[str] = None
    reference: Optional[str] = None
    account_code: Optional[str] = None


@dataclass
class ContactRequest:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[PostalAddress] = None
    is_customer: bool = True
    is_supplier: bool = False


@dataclass
class InvoiceSummary:
    invoice_id: str
    status: str
    amount: float
    amount_due: float
    invoice_number: Optional[str] = None
    invoice_url: Optional[str] = None


@dataclass
class TaxRate:
    name: str
    rate: float  # Percent
    code: Optional[str] = None


DEFAULT_TAX_RATES = [
    TaxRate(name="VAT (15%)", rate=15, code="VAT"),
    TaxRate(name="Zero Rated", rate=0, code="ZERO"),
    TaxRate(name="Exempt", rate=0, code="EXEMPT"),
]


class AccountingProvider(ABC):
    """Abstract base class for accounting backends."""

    @property
    @abstractmethod
    def name(self) -> str: ...

    @property
    @abstractmethod
    def display_name(self) -> str: ...

    @abstractmethod
    def is_configured(self) -> bool: ...

    @abstractmethod
    async def is_connected(self) -> bool:
        """True when an authenticated session with the backend is available."""
        ...

    @abstractmethod
    def authorization_url(self, state: str) -> str: ...

    @abstractmethod
    async def handle_callback(self, code: str) -> None:
        """Exchange an authorization code and persist the resulting credential."""
        ...

    @abstractmethod
    async def create_invoice(self, request: InvoiceRequest) -> InvoiceResult: ...

    @abstractmethod
    async def record_payment(self, payment: InvoicePayment) -> str:
        """Record a payment against an invoice; returns the backend payment id."""
        ...

    @abstractmethod
    async def create_or_update_contact(self, request: ContactRequest) -> str:
        """Upsert a contact by name; returns the backend contact id."""
        ...

    @abstractmethod
    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceSummary]: ...

    def supported_currencies(self) -> list[str]:
        return ["ZAR"]

    def default_tax_rates(self) -> list[TaxRate]:
        return list(DEFAULT_TAX_RATES)
