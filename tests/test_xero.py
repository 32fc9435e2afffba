"""Tests for the Xero OAuth client and accounting adapter."""

import base64
import json
from datetime import date, timedelta
from urllib.parse import parse_qs, urlparse

import pytest

from backoffice.engine.credentials import CredentialManager, TokenResponse
from backoffice.errors import ConfigurationError, UpstreamError
from backoffice.providers.accounting.base import InvoiceLine, InvoiceRequest
from backoffice.providers.accounting.xero import (
    SCOPES,
    TOKEN_URL,
    XeroConfig,
    XeroOAuthClient,
    XeroProvider,
)

CONFIG = XeroConfig(
    client_id="client-1",
    client_secret="secret-1",
    tenant_id="tenant-1",
    site_url="https://shop.example.co.za/",
)

TOKEN_PAYLOAD = {
    "access_token": "xero-access",
    "refresh_token": "xero-refresh",
    "expires_in": 1800,
    "token_type": "Bearer",
    "scope": " ".join(SCOPES),
}


def _form(request) -> dict[str, list[str]]:
    return parse_qs(request.content.decode("utf-8"))


class TestXeroOAuthClient:
    def test_authorization_url(self):
        url = XeroOAuthClient(CONFIG).authorization_url("state-123")
        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["client-1"]
        assert query["state"] == ["state-123"]
        assert query["redirect_uri"] == ["https://shop.example.co.za/api/accounting/xero/callback"]
        assert set(query["scope"][0].split(" ")) == set(SCOPES)

    @pytest.mark.asyncio
    async def test_code_exchange_uses_basic_auth(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_PAYLOAD)

        token = await XeroOAuthClient(CONFIG).exchange_code("auth-code")

        assert token.access_token == "xero-access"
        assert token.expires_in == 1800
        request = httpx_mock.get_request()
        expected = base64.b64encode(b"client-1:secret-1").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"
        form = _form(request)
        assert form["grant_type"] == ["authorization_code"]
        assert form["code"] == ["auth-code"]

    @pytest.mark.asyncio
    async def test_refresh_grant(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_PAYLOAD)
        await XeroOAuthClient(CONFIG).refresh("old-refresh")
        form = _form(httpx_mock.get_request())
        assert form["grant_type"] == ["refresh_token"]
        assert form["refresh_token"] == ["old-refresh"]

    @pytest.mark.asyncio
    async def test_incomplete_payload_rejected(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json={"access_token": "only"})
        with pytest.raises(UpstreamError):
            await XeroOAuthClient(CONFIG).exchange_code("auth-code")

    @pytest.mark.asyncio
    async def test_invalid_grant_is_not_retriable(self, httpx_mock):
        httpx_mock.add_response(method="POST", url=TOKEN_URL, status_code=400, json={"error": "invalid_grant"})
        with pytest.raises(UpstreamError) as exc:
            await XeroOAuthClient(CONFIG).refresh("revoked")
        assert exc.value.status_code == 400
        assert not exc.value.retriable


class TestXeroProvider:
    def _invoice(self) -> InvoiceRequest:
        return InvoiceRequest(
            order_id="o1",
            order_number="ORD-1",
            customer_name="Nkosi Builders",
            customer_email="accounts@nkosi.example",
            items=[InvoiceLine(name="Cement 50kg", quantity=2, unit_price=100.0)],
            subtotal=200.0,
            tax=30.0,
            total=230.0,
            invoice_date=date(2026, 3, 1),
            due_date=date(2026, 3, 31),
        )

    @pytest.mark.asyncio
    async def test_not_connected_means_no_api_call(self, session_factory):
        manager = CredentialManager("xero", XeroOAuthClient(CONFIG), session_factory)
        provider = XeroProvider(CONFIG, manager)
        assert provider.is_configured()
        assert not await provider.is_connected()
        with pytest.raises(ConfigurationError):
            await provider.create_invoice(self._invoice())

    @pytest.mark.asyncio
    async def test_create_invoice_with_active_token(self, session_factory, httpx_mock):
        manager = CredentialManager("xero", XeroOAuthClient(CONFIG), session_factory, refresh_margin=timedelta(minutes=5))
        await manager.store_new_token(TokenResponse(access_token="live-token", refresh_token="r", expires_in=1800))
        httpx_mock.add_response(
            method="POST",
            url="https://api.xero.com/api.xro/2.0/Invoices",
            json={"Invoices": [{"InvoiceID": "inv-42", "InvoiceNumber": "INV-0042"}]},
        )

        result = await XeroProvider(CONFIG, manager).create_invoice(self._invoice())

        assert result.invoice_id == "inv-42"
        assert result.invoice_number == "INV-0042"
        assert result.invoice_url.endswith("InvoiceID=inv-42")
        request = httpx_mock.get_request()
        assert request.headers["Authorization"] == "Bearer live-token"
        assert request.headers["Xero-tenant-id"] == "tenant-1"
        invoice = json.loads(request.content)["Invoices"][0]
        assert invoice["Type"] == "ACCREC"
        assert invoice["Reference"] == "ORD-1"
        assert invoice["DueDate"] == "2026-03-31"
        assert invoice["LineItems"][0]["AccountCode"] == "200"

    @pytest.mark.asyncio
    async def test_expiring_token_refreshed_before_call(self, session_factory, httpx_mock):
        manager = CredentialManager("xero", XeroOAuthClient(CONFIG), session_factory, refresh_margin=timedelta(minutes=5))
        await manager.store_new_token(TokenResponse(access_token="stale", refresh_token="r-old", expires_in=30))
        httpx_mock.add_response(method="POST", url=TOKEN_URL, json=TOKEN_PAYLOAD)
        httpx_mock.add_response(
            method="GET",
            url="https://api.xero.com/api.xro/2.0/Invoices/inv-1",
            json={"Invoices": [{"InvoiceID": "inv-1", "Status": "PAID", "Total": 230.0, "AmountDue": 0}]},
        )

        summary = await XeroProvider(CONFIG, manager).get_invoice("inv-1")

        assert summary.status == "PAID"
        assert summary.amount_due == 0
        api_call = httpx_mock.get_requests()[-1]
        assert api_call.headers["Authorization"] == "Bearer xero-access"
