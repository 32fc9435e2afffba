"""
Paystack gateway adapter.

REST API with bearer auth. Amounts go over the wire in the minor unit
(cents). Webhooks are signed with HMAC-SHA512 of the raw request body,
delivered in the ``x-paystack-signature`` header.
"""

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Optional

from backoffice.errors import ConfigurationError, SignatureError, UpstreamError, ValidationError
from backoffice.models.enums import WebhookStatus
from backoffice.providers.http import VendorClient
from backoffice.providers.payment.base import (
    PaymentProvider,
    PaymentRequest,
    PaymentResult,
    RefundRequest,
    RefundResult,
    WebhookDelivery,
    WebhookResult,
)

logger = logging.getLogger("backoffice.payment.paystack")

PAYSTACK_API_URL = "https://api.paystack.co"

EVENT_MAP = {
    "charge.success": WebhookStatus.SUCCESS,
    "charge.failed": WebhookStatus.FAILED,
}


@dataclass
class PaystackConfig:
    secret_key: str
    api_url: str = PAYSTACK_API_URL


def _to_minor(amount: float) -> int:
    return int(round(amount * 100))


class PaystackProvider(PaymentProvider):
    def __init__(self, config: PaystackConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.api_url, provider="paystack", timeout=timeout)

    @property
    def name(self) -> str:
        return "paystack"

    @property
    def display_name(self) -> str:
        return "Paystack"

    def is_configured(self) -> bool:
        return bool(self.config.secret_key)

    def _headers(self) -> dict[str, str]:
        if not self.is_configured():
            raise ConfigurationError("Paystack is not configured", provider=self.name)
        return {"Authorization": f"Bearer {self.config.secret_key}"}

    async def initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        body = await self._client.post_json(
            "/transaction/initialize",
            headers=self._headers(),
            json={
                "email": request.customer.email,
                "amount": _to_minor(request.amount),
                "currency": request.currency,
                "reference": request.order_number,
                "callback_url": request.return_url,
                "metadata": {
                    "order_id": request.order_id,
                    "order_number": request.order_number,
                    "customer_name": request.customer.name,
                    **request.metadata,
                },
            },
            operation="initialize",
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or not data.get("authorization_url"):
            raise UpstreamError(
                "Paystack response missing authorization_url", provider=self.name, retriable=False
            )
        return PaymentResult(
            payment_id=data.get("reference") or request.order_number,
            redirect_url=data["authorization_url"],
        )

    def verify_webhook_signature(self, delivery: WebhookDelivery) -> bool:
        if not self.config.secret_key or not delivery.signature:
            return False
        raw = delivery.raw_body or json.dumps(delivery.params, separators=(",", ":")).encode("utf-8")
        expected = hmac.new(self.config.secret_key.encode("utf-8"), raw, hashlib.sha512).hexdigest()
        return hmac.compare_digest(expected, delivery.signature.lower())

    async def process_webhook(self, delivery: WebhookDelivery) -> WebhookResult:
        if not self.is_configured():
            raise ConfigurationError("Paystack is not configured", provider=self.name)
        if not self.verify_webhook_signature(delivery):
            raise SignatureError("Invalid Paystack signature", provider=self.name)

        event = delivery.params.get("event", "")
        data = delivery.params.get("data") or {}
        if not isinstance(data, dict):
            raise ValidationError("Paystack webhook data must be an object")
        metadata = data.get("metadata") or {}
        if not isinstance(metadata, dict):
            raise ValidationError("Paystack webhook metadata must be an object")
        status = EVENT_MAP.get(event, WebhookStatus.PENDING)
        amount = data.get("amount")
        return WebhookResult(
            success=True,
            status=status,
            payment_id=data.get("reference"),
            order_id=metadata.get("order_number") or data.get("reference"),
            amount=amount / 100 if isinstance(amount, (int, float)) else None,
        )

    async def process_refund(self, request: RefundRequest) -> RefundResult:
        payload = {"transaction": request.payment_id, "currency": "ZAR"}
        if request.amount:
            payload["amount"] = _to_minor(request.amount)
        if request.reason:
            payload["customer_note"] = request.reason
        body = await self._client.post_json(
            "/refund", headers=self._headers(), json=payload, operation="refund"
        )
        data = body.get("data") if isinstance(body, dict) else None
        if not isinstance(data, dict) or data.get("id") is None:
            raise UpstreamError("Paystack refund response missing id", provider=self.name, retriable=False)
        amount = data.get("amount")
        return RefundResult(
            refund_id=str(data["id"]),
            amount=amount / 100 if isinstance(amount, (int, float)) else request.amount,
        )

    def supported_payment_methods(self) -> list[str]:
        return ["card", "bank", "ussd", "qr", "mobile_money", "bank_transfer"]
