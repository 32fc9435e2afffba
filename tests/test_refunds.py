"""Tests for order refunds through the gateway that took the payment."""

import json
from urllib.parse import parse_qs

import pytest
import pytest_asyncio
from sqlalchemy import select

from backoffice.engine.refunds import refund_order
from backoffice.errors import StateError, UpstreamError, ValidationError
from backoffice.models.records import AuditLog, Order, OrderStatusHistory
from backoffice.providers.payment.mock import MockPaymentProvider
from backoffice.providers.payment.payfast import PayFastConfig, PayFastProvider
from backoffice.providers.payment.paystack import PaystackConfig, PaystackProvider
from backoffice.providers.registry import ProviderRegistry

PAYFAST_REFUND_URL = "https://sandbox.payfast.co.za/eng/query/refund"
PAYSTACK_REFUND_URL = "https://api.paystack.co/refund"


@pytest.fixture
def payments():
    registry = ProviderRegistry("payment", default="mock")
    registry.register(
        PayFastProvider(
            PayFastConfig(
                merchant_id="10000100",
                merchant_key="46f0cd694581a",
                passphrase="jt7NOE43FZPn",
                site_url="https://shop.example.co.za",
            )
        )
    )
    registry.register(PaystackProvider(PaystackConfig(secret_key="sk_test_abc123")))
    registry.register(MockPaymentProvider())
    return registry


async def _paid_order(session, provider: str, reference: str, total: float = 150.0) -> Order:
    order = Order(
        order_number=f"ORD-{provider.upper()}-1",
        status="PROCESSING",
        payment_status="PAID",
        payment_provider=provider,
        payment_reference=reference,
        subtotal=round(total / 1.15, 2),
        vat_amount=round(total - total / 1.15, 2),
        total=total,
    )
    session.add(order)
    await session.commit()
    return order


async def _notes(session, order_id) -> list[str]:
    result = await session.execute(
        select(OrderStatusHistory.notes).where(OrderStatusHistory.order_id == order_id).order_by(OrderStatusHistory.id)
    )
    return list(result.scalars().all())


async def _actions(session) -> list[str]:
    return list((await session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all())


class TestPayFastRefund:
    @pytest.mark.asyncio
    async def test_full_refund_accepted(self, db_session, payments, httpx_mock):
        httpx_mock.add_response(method="POST", url=PAYFAST_REFUND_URL, text="SUCCESS REFUND_ID=RF778")
        order = await _paid_order(db_session, "payfast", "1089250")

        refund = await refund_order(db_session, order.id, payments, reason="Out of stock")

        assert refund.provider == "payfast"
        assert refund.refund_id == "RF778"
        assert refund.amount == 150.0
        assert refund.payment_status == "REFUNDED"

        form = parse_qs(httpx_mock.get_request().content.decode("utf-8"))
        assert form["pf_payment_id"] == ["1089250"]
        assert form["merchant_id"] == ["10000100"]
        assert "amount" not in form
        assert "signature" in form

        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "REFUNDED"
        assert refreshed.refunded_amount == 150.0
        assert await _notes(db_session, order.id) == ["Refund R150.00 via payfast (ref RF778): Out of stock"]
        assert await _actions(db_session) == ["order_refunded"]

    @pytest.mark.asyncio
    async def test_declined_refund_changes_nothing(self, db_session, payments, httpx_mock):
        httpx_mock.add_response(method="POST", url=PAYFAST_REFUND_URL, text="FAILED: transaction already refunded")
        order = await _paid_order(db_session, "payfast", "1089250")

        with pytest.raises(UpstreamError) as exc:
            await refund_order(db_session, order.id, payments)

        assert "already refunded" in str(exc.value)
        assert not exc.value.retriable
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PAID"
        assert refreshed.refunded_amount == 0.0
        assert await _notes(db_session, order.id) == []
        assert await _actions(db_session) == []

    @pytest.mark.asyncio
    async def test_partial_amount_sent(self, db_session, payments, httpx_mock):
        httpx_mock.add_response(method="POST", url=PAYFAST_REFUND_URL, text="SUCCESS")
        order = await _paid_order(db_session, "payfast", "1089250")

        refund = await refund_order(db_session, order.id, payments, amount=40.0)

        assert refund.refund_id is None
        assert refund.payment_status == "PAID"
        form = parse_qs(httpx_mock.get_request().content.decode("utf-8"))
        assert form["amount"] == ["40.00"]


class TestPaystackRefund:
    @pytest.mark.asyncio
    async def test_partial_then_remaining(self, db_session, payments, httpx_mock):
        httpx_mock.add_response(
            method="POST", url=PAYSTACK_REFUND_URL, json={"status": True, "data": {"id": 3018284, "amount": 5000}}
        )
        httpx_mock.add_response(
            method="POST", url=PAYSTACK_REFUND_URL, json={"status": True, "data": {"id": 3018285, "amount": 10000}}
        )
        order = await _paid_order(db_session, "paystack", "ps_ref_1")

        first = await refund_order(db_session, order.id, payments, amount=50.0, reason="Damaged tile")
        assert first.refund_id == "3018284"
        assert first.refunded_total == 50.0
        assert first.payment_status == "PAID"

        second = await refund_order(db_session, order.id, payments)
        assert second.amount == 100.0
        assert second.payment_status == "REFUNDED"

        first_call, second_call = httpx_mock.get_requests()
        assert first_call.headers["Authorization"] == "Bearer sk_test_abc123"
        assert json.loads(first_call.content) == {
            "transaction": "ps_ref_1",
            "currency": "ZAR",
            "amount": 5000,
            "customer_note": "Damaged tile",
        }
        assert json.loads(second_call.content)["amount"] == 10000
        assert await _actions(db_session) == ["order_refunded", "order_refunded"]

    @pytest.mark.asyncio
    async def test_response_without_id_is_upstream_error(self, db_session, payments, httpx_mock):
        httpx_mock.add_response(method="POST", url=PAYSTACK_REFUND_URL, json={"status": False, "message": "no"})
        order = await _paid_order(db_session, "paystack", "ps_ref_1")

        with pytest.raises(UpstreamError):
            await refund_order(db_session, order.id, payments)
        assert (await db_session.get(Order, order.id)).payment_status == "PAID"


class TestRefundRules:
    @pytest.mark.asyncio
    async def test_unpaid_order_rejected(self, db_session, payments):
        order = Order(order_number="ORD-UNPAID", total=100.0)
        db_session.add(order)
        await db_session.commit()
        with pytest.raises(StateError):
            await refund_order(db_session, order.id, payments)

    @pytest.mark.asyncio
    async def test_refunded_order_rejected(self, db_session, payments):
        order = await _paid_order(db_session, "mock", "mock_pay_1")
        order.payment_status = "REFUNDED"
        await db_session.commit()
        with pytest.raises(StateError):
            await refund_order(db_session, order.id, payments)

    @pytest.mark.asyncio
    async def test_missing_reference_rejected(self, db_session, payments):
        order = await _paid_order(db_session, "mock", None)
        with pytest.raises(StateError):
            await refund_order(db_session, order.id, payments)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, 150.01])
    async def test_amount_bounds(self, db_session, payments, amount, httpx_mock):
        order = await _paid_order(db_session, "payfast", "1089250")
        with pytest.raises(ValidationError):
            await refund_order(db_session, order.id, payments, amount=amount)
        assert httpx_mock.get_requests() == []

    @pytest.mark.asyncio
    async def test_gateway_without_recorded_provider_uses_default(self, db_session, payments):
        mock = payments.get("mock")
        mock.payments["mock_pay_1"] = {"status": "success", "amount": 150.0, "order_number": "ORD-OLD"}
        order = await _paid_order(db_session, "mock", "mock_pay_1")
        order.payment_provider = None
        await db_session.commit()

        refund = await refund_order(db_session, order.id, payments)

        assert refund.provider == "mock"
        assert refund.refund_id.startswith("refund_")
