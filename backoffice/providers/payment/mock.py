"""
In-memory payment gateway for development and tests.

Checkouts are remembered in a dict so webhooks and refunds can be replayed
against them. Signatures are not checked.
"""

import uuid

from backoffice.errors import ValidationError
from backoffice.models.enums import WebhookStatus
from backoffice.providers.payment.base import (
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    RefundRequest,
    RefundResult,
    WebhookDelivery,
    WebhookResult,
)


class MockPaymentProvider(PaymentProvider):
    def __init__(self):
        self.payments: dict[str, dict] = {}

    @property
    def name(self) -> str:
        return "mock"

    @property
    def display_name(self) -> str:
        return "Mock Payment Provider"

    def is_configured(self) -> bool:
        return True

    async def initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        payment_id = f"mock_{uuid.uuid4().hex[:12]}"
        self.payments[payment_id] = {
            "status": WebhookStatus.PENDING,
            "amount": request.amount,
            "order_number": request.order_number,
        }
        return PaymentResult(
            payment_id=payment_id,
            redirect_url=f"/checkout/mock-payment?paymentId={payment_id}&orderId={request.order_id}",
        )

    def verify_webhook_signature(self, delivery: WebhookDelivery) -> bool:
        return True

    async def process_webhook(self, delivery: WebhookDelivery) -> WebhookResult:
        params = delivery.params
        payment_id = params.get("payment_id") or params.get("paymentId")
        payment = self.payments.get(payment_id) if payment_id else None
        if payment is None:
            raise ValidationError(f"Unknown mock payment: {payment_id}")

        try:
            status = WebhookStatus(params.get("status", WebhookStatus.SUCCESS.value))
        except ValueError:
            status = WebhookStatus.PENDING
        payment["status"] = status
        return WebhookResult(
            success=True,
            status=status,
            payment_id=payment_id,
            order_id=params.get("order_id") or payment["order_number"],
            amount=payment["amount"],
        )

    async def process_refund(self, request: RefundRequest) -> RefundResult:
        payment = self.payments.get(request.payment_id)
        if payment is None:
            raise ValidationError(f"Unknown mock payment: {request.payment_id}")
        return RefundResult(
            refund_id=f"refund_{uuid.uuid4().hex[:12]}",
            amount=request.amount or payment["amount"],
        )

    def supported_payment_methods(self) -> list[str]:
        return ["mock_card", "mock_eft", "mock_wallet"]
