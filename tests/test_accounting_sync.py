"""Tests for pushing orders and their payments into the accounting backend."""

import json
import re
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from backoffice.engine.accounting_sync import sync_order_to_accounting, sync_paid_order
from backoffice.engine.credentials import CredentialManager, TokenResponse
from backoffice.errors import ConfigurationError, UpstreamError
from backoffice.models.records import AuditLog, Order, OrderItem
from backoffice.providers.accounting.mock import MockAccountingProvider
from backoffice.providers.accounting.xero import XeroConfig, XeroOAuthClient, XeroProvider
from backoffice.providers.registry import ProviderRegistry

XERO = XeroConfig(client_id="client-1", client_secret="secret-1", tenant_id="tenant-1", site_url="https://shop.example.co.za")
XERO_API = "https://api.xero.com/api.xro/2.0"


class RejectingAccounting(MockAccountingProvider):
    async def create_invoice(self, request):
        raise UpstreamError("ledger locked", provider=self.name, status_code=400, retriable=False)


def _accounting(*backends) -> ProviderRegistry:
    registry = ProviderRegistry("accounting")
    for backend in backends:
        registry.register(backend)
    return registry


@pytest_asyncio.fixture
async def order(db_session):
    order = Order(
        order_number="ORD-1700000000000-ACC0001",
        customer_name="Nkosi Builders",
        customer_email="accounts@nkosi.example",
        customer_phone="0821234567",
        subtotal=200.0,
        vat_amount=30.0,
        total=230.0,
        items=[
            OrderItem(product_name="Cement 50kg", product_sku="CEM-50", quantity=2, unit_price=100.0, total_price=200.0)
        ],
    )
    db_session.add(order)
    await db_session.commit()
    return order


async def _mark_paid(session, order: Order, provider: str = "payfast", reference: str = "1089250") -> None:
    order.payment_status = "PAID"
    order.status = "PROCESSING"
    order.payment_provider = provider
    order.payment_reference = reference
    await session.commit()


async def _actions(session) -> list[str]:
    return list((await session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all())


class TestSyncOrder:
    @pytest.mark.asyncio
    async def test_unpaid_order_gets_invoice_only(self, db_session, order):
        backend = MockAccountingProvider()

        result = await sync_order_to_accounting(db_session, order.id, _accounting(backend))

        assert result.backend == "mock"
        assert result.invoice_created
        assert result.payment_id is None
        assert backend.contacts.keys() == {"Nkosi Builders"}
        assert backend.invoices[result.invoice_id]["total"] == 230.0

        refreshed = await db_session.get(Order, order.id)
        assert refreshed.accounting_backend == "mock"
        assert refreshed.accounting_invoice_id == result.invoice_id
        assert await _actions(db_session) == ["accounting_invoice_created"]

    @pytest.mark.asyncio
    async def test_paid_order_gets_invoice_and_payment(self, db_session, order):
        backend = MockAccountingProvider()
        await _mark_paid(db_session, order)

        result = await sync_order_to_accounting(db_session, order.id, _accounting(backend))

        assert result.payment_id.startswith("mock-pay-")
        summary = await backend.get_invoice(result.invoice_id)
        assert summary.status == "PAID"
        assert summary.amount_due == 0
        assert await _actions(db_session) == ["accounting_invoice_created", "accounting_payment_recorded"]

    @pytest.mark.asyncio
    async def test_repeat_sync_sends_nothing_twice(self, db_session, order):
        backend = MockAccountingProvider()
        registry = _accounting(backend)
        await _mark_paid(db_session, order)
        first = await sync_order_to_accounting(db_session, order.id, registry)

        second = await sync_order_to_accounting(db_session, order.id, registry)

        assert not second.invoice_created
        assert second.invoice_id == first.invoice_id
        assert second.payment_id == first.payment_id
        assert len(backend.invoices) == 1
        assert backend.invoices[first.invoice_id]["paid"] == 230.0
        assert len(await _actions(db_session)) == 2

    @pytest.mark.asyncio
    async def test_payment_recorded_against_earlier_invoice(self, db_session, order):
        backend = MockAccountingProvider()
        registry = _accounting(backend)
        invoiced = await sync_order_to_accounting(db_session, order.id, registry)
        await _mark_paid(db_session, order)

        paid = await sync_order_to_accounting(db_session, order.id, registry)

        assert not paid.invoice_created
        assert paid.invoice_id == invoiced.invoice_id
        assert paid.payment_id is not None

    @pytest.mark.asyncio
    async def test_no_backend(self, db_session, order):
        with pytest.raises(ConfigurationError):
            await sync_order_to_accounting(db_session, order.id, _accounting())

    @pytest.mark.asyncio
    async def test_disconnected_xero_makes_no_calls(self, db_session, session_factory, order, httpx_mock):
        manager = CredentialManager("xero", XeroOAuthClient(XERO), session_factory)
        with pytest.raises(ConfigurationError):
            await sync_order_to_accounting(db_session, order.id, _accounting(XeroProvider(XERO, manager)))
        assert httpx_mock.get_requests() == []
        assert (await db_session.get(Order, order.id)).accounting_invoice_id is None


class TestXeroSync:
    @pytest.mark.asyncio
    async def test_contact_invoice_and_payment(self, db_session, session_factory, order, httpx_mock):
        manager = CredentialManager("xero", XeroOAuthClient(XERO), session_factory, refresh_margin=timedelta(minutes=5))
        await manager.store_new_token(TokenResponse(access_token="live-token", refresh_token="r", expires_in=1800))
        httpx_mock.add_response(method="GET", url=re.compile(rf"{re.escape(XERO_API)}/Contacts\?.*"), json={"Contacts": []})
        httpx_mock.add_response(method="POST", url=f"{XERO_API}/Contacts", json={"Contacts": [{"ContactID": "c-1"}]})
        httpx_mock.add_response(
            method="POST",
            url=f"{XERO_API}/Invoices",
            json={"Invoices": [{"InvoiceID": "inv-42", "InvoiceNumber": "INV-0042"}]},
        )
        httpx_mock.add_response(method="PUT", url=f"{XERO_API}/Payments", json={"Payments": [{"PaymentID": "pay-7"}]})
        await _mark_paid(db_session, order, reference="1089250")

        result = await sync_order_to_accounting(db_session, order.id, _accounting(XeroProvider(XERO, manager)))

        assert (result.backend, result.invoice_id, result.payment_id) == ("xero", "inv-42", "pay-7")
        _, contact_call, invoice_call, payment_call = httpx_mock.get_requests()
        assert json.loads(contact_call.content)["Contacts"][0]["EmailAddress"] == "accounts@nkosi.example"
        invoice = json.loads(invoice_call.content)["Invoices"][0]
        assert invoice["Reference"] == order.order_number
        assert invoice["LineItems"][0]["Description"] == "Cement 50kg"
        payment = json.loads(payment_call.content)["Payments"][0]
        assert payment["Invoice"] == {"InvoiceID": "inv-42"}
        assert payment["Amount"] == 230.0
        assert payment["Reference"] == "payfast: 1089250"


class TestSyncAfterPayment:
    @pytest.mark.asyncio
    async def test_backend_failure_leaves_payment_alone(self, db_session, order):
        await _mark_paid(db_session, order)

        outcome = await sync_paid_order(db_session, order.order_number, _accounting(RejectingAccounting()))

        assert not outcome.ok
        assert outcome.error_kind == "upstream"
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PAID"
        assert refreshed.accounting_invoice_id is None
        assert await _actions(db_session) == []

    @pytest.mark.asyncio
    async def test_unpaid_or_unknown_order_skipped(self, db_session, order):
        registry = _accounting(MockAccountingProvider())
        assert await sync_paid_order(db_session, order.order_number, registry) is None
        assert await sync_paid_order(db_session, "ORD-UNKNOWN", registry) is None

    @pytest.mark.asyncio
    async def test_paid_order_synced(self, db_session, order):
        await _mark_paid(db_session, order)
        outcome = await sync_paid_order(db_session, order.order_number, _accounting(MockAccountingProvider()))
        assert outcome.ok
        assert outcome.value.payment_id is not None
