"""Tests for payment webhook ingestion."""

import hashlib
import hmac
import json

import pytest
import pytest_asyncio
from sqlalchemy import func, select

from backoffice.engine.webhooks import WebhookDelivery, ingest_payment_webhook
from backoffice.errors import ConfigurationError, SignatureError, ValidationError
from backoffice.models.records import AuditLog, Order, OrderStatusHistory
from backoffice.providers.payment.payfast import PayFastConfig, PayFastProvider
from backoffice.providers.payment.paystack import PaystackConfig, PaystackProvider
from backoffice.providers.registry import ProviderRegistry
from backoffice.security.signature import sign

PASSPHRASE = "jt7NOE43FZPn"
PAYSTACK_SECRET = "sk_test_abc123"


@pytest.fixture
def registry():
    registry = ProviderRegistry("payment")
    registry.register(
        PayFastProvider(
            PayFastConfig(
                merchant_id="10000100",
                merchant_key="46f0cd694581a",
                passphrase=PASSPHRASE,
                site_url="https://shop.example.co.za",
            )
        )
    )
    registry.register(PaystackProvider(PaystackConfig(secret_key=PAYSTACK_SECRET)))
    return registry


@pytest_asyncio.fixture
async def order(db_session):
    order = Order(order_number="ORD-1700000000000-ABC1234", total=150.0, subtotal=130.43, vat_amount=19.57)
    db_session.add(order)
    await db_session.commit()
    return order


def _itn(order_number: str, status: str = "COMPLETE") -> dict:
    params = {
        "m_payment_id": order_number,
        "pf_payment_id": "1089250",
        "payment_status": status,
        "item_name": "Order ORD-1",
        "amount_gross": "150.00",
        "amount_fee": "-3.45",
        "amount_net": "146.55",
        "merchant_id": "10000100",
    }
    params["signature"] = sign(params, PASSPHRASE, "md5")
    return params


async def _history(session, order_id) -> list[OrderStatusHistory]:
    result = await session.execute(
        select(OrderStatusHistory).where(OrderStatusHistory.order_id == order_id).order_by(OrderStatusHistory.id)
    )
    return list(result.scalars().all())


async def _actions(session) -> list[str]:
    return list((await session.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all())


class TestPayFastWebhook:
    @pytest.mark.asyncio
    async def test_complete_notification_marks_order_paid(self, db_session, registry, order):
        delivery = WebhookDelivery(params=_itn(order.order_number))
        result = await ingest_payment_webhook(db_session, registry, "payfast", delivery)

        assert result.status == "success"
        assert result.amount == 150.0
        assert result.order_id == order.order_number

        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PAID"
        assert refreshed.status == "PROCESSING"
        assert refreshed.payment_reference == "1089250"
        assert len(await _history(db_session, order.id)) == 1
        assert "webhook_processed" in await _actions(db_session)

    @pytest.mark.asyncio
    async def test_redelivery_adds_no_history(self, db_session, registry, order):
        delivery = WebhookDelivery(params=_itn(order.order_number))
        await ingest_payment_webhook(db_session, registry, "payfast", delivery)
        await ingest_payment_webhook(db_session, registry, "payfast", delivery)

        assert len(await _history(db_session, order.id)) == 1
        assert (await _actions(db_session)).count("webhook_processed") == 1

    @pytest.mark.asyncio
    async def test_tampered_signature_rejected_and_audited(self, db_session, registry, order):
        params = _itn(order.order_number)
        params["signature"] = ("0" if params["signature"][0] != "0" else "1") + params["signature"][1:]

        with pytest.raises(SignatureError):
            await ingest_payment_webhook(db_session, registry, "payfast", WebhookDelivery(params=params))

        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PENDING"
        assert refreshed.status == "PENDING"
        assert await _history(db_session, order.id) == []
        assert await _actions(db_session) == ["webhook_rejected"]

    @pytest.mark.asyncio
    async def test_tampered_amount_rejected(self, db_session, registry, order):
        params = _itn(order.order_number)
        params["amount_gross"] = "1.00"
        with pytest.raises(SignatureError):
            await ingest_payment_webhook(db_session, registry, "payfast", WebhookDelivery(params=params))

    @pytest.mark.asyncio
    async def test_failed_payment_keeps_order_pending(self, db_session, registry, order):
        await ingest_payment_webhook(
            db_session, registry, "payfast", WebhookDelivery(params=_itn(order.order_number, "FAILED"))
        )
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "FAILED"
        assert refreshed.status == "PENDING"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("late_status", ["PENDING", "FAILED", "CANCELLED"])
    async def test_late_notification_cannot_unpay_order(self, db_session, registry, order, late_status):
        await ingest_payment_webhook(db_session, registry, "payfast", WebhookDelivery(params=_itn(order.order_number)))
        result = await ingest_payment_webhook(
            db_session, registry, "payfast", WebhookDelivery(params=_itn(order.order_number, late_status))
        )

        assert result.status == late_status.lower()
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PAID"
        assert refreshed.status == "PROCESSING"
        assert len(await _history(db_session, order.id)) == 1
        assert await _actions(db_session) == ["webhook_processed", "webhook_stale"]

    @pytest.mark.asyncio
    async def test_refunded_order_ignores_replayed_success(self, db_session, registry, order):
        order.payment_status = "REFUNDED"
        await db_session.commit()

        await ingest_payment_webhook(db_session, registry, "payfast", WebhookDelivery(params=_itn(order.order_number)))

        assert (await db_session.get(Order, order.id)).payment_status == "REFUNDED"
        assert await _history(db_session, order.id) == []
        assert await _actions(db_session) == ["webhook_stale"]

    @pytest.mark.asyncio
    async def test_gateway_recorded_on_order(self, db_session, registry, order):
        await ingest_payment_webhook(db_session, registry, "payfast", WebhookDelivery(params=_itn(order.order_number)))
        assert (await db_session.get(Order, order.id)).payment_provider == "payfast"

    @pytest.mark.asyncio
    async def test_unknown_order_is_acknowledged_and_audited(self, db_session, registry, order):
        result = await ingest_payment_webhook(
            db_session, registry, "payfast", WebhookDelivery(params=_itn("ORD-UNKNOWN"))
        )
        assert result.order_id == "ORD-UNKNOWN"
        assert await _actions(db_session) == ["webhook_unmatched"]
        assert (await db_session.get(Order, order.id)).payment_status == "PENDING"


class TestPaystackWebhook:
    def _delivery(self, order_number: str, secret: str = PAYSTACK_SECRET) -> WebhookDelivery:
        payload = {
            "event": "charge.success",
            "data": {
                "reference": "ps_ref_1",
                "amount": 15000,
                "metadata": {"order_number": order_number},
            },
        }
        raw = json.dumps(payload).encode("utf-8")
        signature = hmac.new(secret.encode("utf-8"), raw, hashlib.sha512).hexdigest()
        return WebhookDelivery(params=payload, raw_body=raw, signature=signature)

    @pytest.mark.asyncio
    async def test_signed_body_accepted(self, db_session, registry, order):
        result = await ingest_payment_webhook(db_session, registry, "paystack", self._delivery(order.order_number))
        assert result.amount == 150.0
        refreshed = await db_session.get(Order, order.id)
        assert refreshed.payment_status == "PAID"
        assert refreshed.payment_reference == "ps_ref_1"

    @pytest.mark.asyncio
    async def test_wrong_secret_rejected(self, db_session, registry, order):
        with pytest.raises(SignatureError):
            await ingest_payment_webhook(
                db_session, registry, "paystack", self._delivery(order.order_number, secret="sk_other")
            )
        assert (await db_session.get(Order, order.id)).payment_status == "PENDING"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "data",
        [["reference", "ps_ref_1"], "ps_ref_1", {"reference": "ps_ref_1", "metadata": ["ORD-1"]}],
    )
    async def test_signed_body_with_wrong_shape_rejected(self, db_session, registry, order, data):
        payload = {"event": "charge.success", "data": data}
        raw = json.dumps(payload).encode("utf-8")
        signature = hmac.new(PAYSTACK_SECRET.encode("utf-8"), raw, hashlib.sha512).hexdigest()

        with pytest.raises(ValidationError):
            await ingest_payment_webhook(
                db_session, registry, "paystack", WebhookDelivery(params=payload, raw_body=raw, signature=signature)
            )
        assert (await db_session.get(Order, order.id)).payment_status == "PENDING"

    @pytest.mark.asyncio
    async def test_missing_signature_rejected(self, db_session, registry, order):
        delivery = self._delivery(order.order_number)
        delivery.signature = None
        with pytest.raises(SignatureError):
            await ingest_payment_webhook(db_session, registry, "paystack", delivery)


class TestProviderResolution:
    @pytest.mark.asyncio
    async def test_unknown_provider(self, db_session, registry):
        with pytest.raises(ConfigurationError):
            await ingest_payment_webhook(db_session, registry, "stripe", WebhookDelivery(params={}))

    @pytest.mark.asyncio
    async def test_unconfigured_provider_processes_nothing(self, db_session):
        registry = ProviderRegistry("payment")
        registry.register(PaystackProvider(PaystackConfig(secret_key="")))
        with pytest.raises(ConfigurationError):
            await ingest_payment_webhook(db_session, registry, "paystack", WebhookDelivery(params={}))
        assert await db_session.scalar(select(func.count()).select_from(AuditLog)) == 0
