"""
Xero accounting adapter and its OAuth 2.0 client.

Tokens are never held here: every API call asks the credential manager for
the active token, which refreshes it when it is about to expire.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode

from backoffice.engine.credentials import CredentialManager, TokenResponse
from backoffice.errors import ConfigurationError, UpstreamError
from backoffice.providers.accounting.base import (
    AccountingProvider,
    ContactRequest,
    InvoicePayment,
    InvoiceRequest,
    InvoiceResult,
    InvoiceSummary,
)
from backoffice.providers.http import VendorClient

logger = logging.getLogger("backoffice.accounting.xero")

AUTHORIZE_URL = "https://login.xero.com/identity/connect/authorize"
TOKEN_URL = "https://identity.xero.com/connect/token"
API_URL = "https://api.xero.com/api.xro/2.0"
INVOICE_VIEW_URL = "https://go.xero.com/AccountsReceivable/View.aspx?InvoiceID={}"
SCOPES = [
    "accounting.transactions",
    "accounting.contacts",
    "accounting.settings",
    "offline_access",
]
SALES_ACCOUNT_CODE = "200"
PAYMENT_ACCOUNT_CODE = "090"


@dataclass
class XeroConfig:
    client_id: str
    client_secret: str
    tenant_id: str
    site_url: str

    @property
    def redirect_uri(self) -> str:
        return f"{self.site_url.rstrip('/')}/api/accounting/xero/callback"


class XeroOAuthClient:
    """Authorization-code and refresh-token grants against Xero's identity server."""

    def __init__(self, config: XeroConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(TOKEN_URL, provider="xero", timeout=timeout)

    def authorization_url(self, state: str) -> str:
        params = {
            "response_type": "code",
            "client_id": self.config.client_id,
            "redirect_uri": self.config.redirect_uri,
            "scope": " ".join(SCOPES),
            "state": state,
        }
        return f"{AUTHORIZE_URL}?{urlencode(params)}"

    async def _token_request(self, form: dict[str, str], operation: str) -> TokenResponse:
        payload = await self._client.post_json(
            TOKEN_URL,
            data=form,
            auth=(self.config.client_id, self.config.client_secret),
            operation=operation,
        )
        try:
            return TokenResponse.from_payload(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(
                f"Xero {operation} returned an incomplete token payload",
                provider="xero",
                retriable=False,
            ) from e

    async def exchange_code(self, code: str) -> TokenResponse:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": self.config.redirect_uri,
            },
            operation="code_exchange",
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token},
            operation="token_refresh",
        )


class XeroProvider(AccountingProvider):
    def __init__(
        self,
        config: XeroConfig,
        credentials: CredentialManager,
        timeout: Optional[float] = None,
    ):
        self.config = config
        self.credentials = credentials
        self._client = VendorClient(API_URL, provider="xero", timeout=timeout)

    @property
    def name(self) -> str:
        return "xero"

    @property
    def display_name(self) -> str:
        return "Xero"

    def is_configured(self) -> bool:
        return bool(self.config.client_id and self.config.client_secret and self.config.tenant_id)

    async def is_connected(self) -> bool:
        if not self.is_configured():
            return False
        return await self.credentials.is_connected()

    def authorization_url(self, state: str) -> str:
        return self.credentials.oauth_client.authorization_url(state)

    async def handle_callback(self, code: str) -> None:
        await self.credentials.handle_callback(code)

    async def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Xero is not configured", provider=self.name)
        token = await self.credentials.get_active_token()
        if token is None:
            raise ConfigurationError(
                "Xero is not connected. Connect the Xero account first.", provider=self.name
            )
        return {
            "Authorization": f"Bearer {token.access_token}",
            "Xero-tenant-id": self.config.tenant_id,
            "Accept": "application/json",
        }

    async def create_invoice(self, request: InvoiceRequest) -> InvoiceResult:
        invoice = {
            "Type": "ACCREC",
            "Contact": {"Name": request.customer_name},
            "Date": request.invoice_date.isoformat(),
            "Reference": request.reference or request.order_number,
            "CurrencyCode": request.currency,
            "Status": "AUTHORISED",
            "LineAmountTypes": "Exclusive",
            "LineItems": [
                {
                    "Description": line.description or line.name,
                    "Quantity": line.quantity,
                    "UnitAmount": line.unit_price,
                    "AccountCode": line.account_code or SALES_ACCOUNT_CODE,
                }
                for line in request.items
            ],
        }
        if request.customer_email:
            invoice["Contact"]["EmailAddress"] = request.customer_email
        if request.due_date:
            invoice["DueDate"] = request.due_date.isoformat()

        data = await self._client.post_json(
            "/Invoices",
            headers=await self._headers(),
            json={"Invoices": [invoice]},
            operation="create_invoice",
        )
        created = (data.get("Invoices") or [{}])[0]
        invoice_id = created.get("InvoiceID")
        if not invoice_id:
            raise UpstreamError("Xero did not return an invoice id", provider=self.name, retriable=False)
        logger.info("Created Xero invoice %s for order %s", invoice_id, request.order_number)
        return InvoiceResult(
            invoice_id=invoice_id,
            invoice_number=created.get("InvoiceNumber"),
            invoice_url=INVOICE_VIEW_URL.format(invoice_id),
        )

    async def record_payment(self, payment: InvoicePayment) -> str:
        data = await self._client.request_json(
            "PUT",
            "/Payments",
            headers=await self._headers(),
            json={
                "Payments": [
                    {
                        "Invoice": {"InvoiceID": payment.invoice_id},
                        "Account": {"Code": payment.account_code or PAYMENT_ACCOUNT_CODE},
                        "Date": payment.payment_date.isoformat(),
                        "Amount": payment.amount,
                        "Reference": payment.reference or "",
                    }
                ]
            },
            operation="record_payment",
        )
        recorded = (data.get("Payments") or [{}])[0]
        payment_id = recorded.get("PaymentID")
        if not payment_id:
            raise UpstreamError("Xero did not return a payment id", provider=self.name, retriable=False)
        return payment_id

    async def create_or_update_contact(self, request: ContactRequest) -> str:
        headers = await self._headers()
        search = await self._client.get_json(
            "/Contacts",
            headers=headers,
            params={"where": f'Name=="{request.name}"'},
            operation="find_contact",
        )
        existing = search.get("Contacts") or []
        contact_id = existing[0].get("ContactID") if existing else None

        contact = {
            "Name": request.name,
            "IsCustomer": request.is_customer,
            "IsSupplier": request.is_supplier,
        }
        if request.email:
            contact["EmailAddress"] = request.email
        if request.phone:
            contact["Phones"] = [{"PhoneType": "MOBILE", "PhoneNumber": request.phone}]
        if request.address:
            contact["Addresses"] = [
                {
                    "AddressType": "STREET",
                    "AddressLine1": request.address.street,
                    "City": request.address.city,
                    "Region": request.address.province,
                    "PostalCode": request.address.postal_code,
                    "Country": request.address.country,
                }
            ]

        path = f"/Contacts/{contact_id}" if contact_id else "/Contacts"
        data = await self._client.request_json(
            "PUT" if contact_id else "POST",
            path,
            headers=headers,
            json={"Contacts": [contact]},
            operation="upsert_contact",
        )
        saved = (data.get("Contacts") or [{}])[0]
        return saved.get("ContactID") or contact_id

    async def get_invoice(self, invoice_id: str) -> Optional[InvoiceSummary]:
        try:
            data = await self._client.get_json(
                f"/Invoices/{invoice_id}", headers=await self._headers(), operation="get_invoice"
            )
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        invoices = data.get("Invoices") or []
        if not invoices:
            return None
        invoice = invoices[0]
        return InvoiceSummary(
            invoice_id=invoice["InvoiceID"],
            invoice_number=invoice.get("InvoiceNumber"),
            status=invoice.get("Status", "UNKNOWN"),
            amount=float(invoice.get("Total") or 0),
            amount_due=float(invoice.get("AmountDue") or 0),
            invoice_url=INVOICE_VIEW_URL.format(invoice["InvoiceID"]),
        )

    def supported_currencies(self) -> list[str]:
        return ["ZAR", "USD", "EUR", "GBP"]
