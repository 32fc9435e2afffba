"""In-memory accounting backend for development and tests. Always connected."""

import uuid
from typing import Optional

from backoffice.errors import NotFoundError
from backoffice.providers.accounting.base import (
    AccountingProvider,
    ContactRequest,
    InvoicePayment,
    InvoiceRequest,
    InvoiceResult,
    InvoiceSummary,
)


class MockAccountingProvider(AccountingProvider):
    def __init__(self):
        self.invoices: dict[str, dict] = {}
        self.contacts: dict[str, str] = {}  # name -> contact id

    @property
    def name(self) -> str:
        return "mock"

    @property
    def display_name(self) -> str:
        return "Mock Accounting Provider"

    def is_configured(self) -> bool:
        return True

    async def is_connected(self) -> bool:
        return True

    def authorization_url(self, state: str) -> str:
        return f"/admin/accounting/mock/connected?state={state}"

    async def handle_callback(self, code: str) -> None:
        return None

    async def create_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        invoice_id = f"mock-inv-{uuid.uuid4().hex[:10]}"
        number = f"INV-{len(self.invoices) + 1:05d}"
        self.invoices[invoice_id] = {
            "number": number,
            "total": request.total,
            "paid": 0.0,
        }
        return InvoiceResult(invoice_id=invoice_id, invoice_number=number)

    async def record_payment(self, payment: InvoicePayment) -> str:
        invoice = self.invoices.get(payment.invoice_id)
        if invoice is None:
            raise NotFoundError(f"Invoice {payment.invoice_id} not found", provider=self.name)
        invoice["paid"] += payment.amount
        return f"mock-pay-{uuid.uuid4().hex[:10]}"

    async def create_or_update_contact(self, request: ContactRequest) -> str:
        return self.contacts.setdefault(request.name, f"mock-contact-{uuid.uuid4().hex[:10]}")

    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceSummary]:
        invoice = self.invoices.get(invoice_id)
        if invoice is None:
            return None
        due = round(invoice["total"] - invoice["paid"], 2)
        return InvoiceSummary(
            invoice_id=invoice_id,
            invoice_number=invoice["number"],
            status="PAID" if due <= 0 else "AUTHORISED",
            amount=invoice["total"],
            amount_due=max(due, 0.0),
        )
