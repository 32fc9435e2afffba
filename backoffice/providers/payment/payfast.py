"""
PayFast gateway adapter.

Checkout is a signed redirect: the field set below is signed with the MD5
codec from ``backoffice.security.signature`` and appended to the process
URL. ITN notifications arrive form-encoded and carry the same kind of
signature. Refunds are a signed form POST to the query API.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from backoffice.errors import ConfigurationError, SignatureError, UpstreamError
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
from backoffice.security import signature

logger = logging.getLogger("backoffice.payment.payfast")

SANDBOX_HOST = "https://sandbox.payfast.co.za"
PRODUCTION_HOST = "https://www.payfast.co.za"
NOTIFY_PATH = "/api/webhooks/payfast"

STATUS_MAP = {
    "COMPLETE": WebhookStatus.SUCCESS,
    "FAILED": WebhookStatus.FAILED,
    "CANCELLED": WebhookStatus.CANCELLED,
    "PENDING": WebhookStatus.PENDING,
}

_REFUND_ID = re.compile(r"REFUND_ID=(\w+)")


@dataclass
class PayFastConfig:
    merchant_id: str
    merchant_key: str
    passphrase: str
    site_url: str
    sandbox: bool = True

    @property
    def host(self) -> str:
        return SANDBOX_HOST if self.sandbox else PRODUCTION_HOST

    @property
    def process_url(self) -> str:
        return f"{self.host}/eng/process"

    @property
    def refund_url(self) -> str:
        return f"{self.host}/eng/query/refund"


class PayFastProvider(PaymentProvider):
    def __init__(self, config: PayFastConfig, timeout: Optional[float] = None):
        self.config = config
        self._client = VendorClient(config.host, provider="payfast", timeout=timeout)

    @property
    def name(self) -> str:
        return "payfast"

    @property
    def display_name(self) -> str:
        return "PayFast"

    def is_configured(self) -> bool:
        return bool(self.config.merchant_id and self.config.merchant_key and self.config.passphrase)

    def _require_configured(self) -> None:
        if not self.is_configured():
            raise ConfigurationError("PayFast is not configured", provider=self.name)

    def checkout_fields(self, request: PaymentRequest) -> dict[str, str]:
        """Signed field set for the hosted checkout, in submission order."""
        self._require_configured()
        first_name, last_name = request.customer.split_name()
        total = sum(item.price * item.quantity for item in request.items)
        if len(request.items) == 1:
            item_name = request.items[0].name
        else:
            item_name = f"{len(request.items)} items"

        fields = {
            "merchant_id": self.config.merchant_id,
            "merchant_key": self.config.merchant_key,
            "return_url": request.return_url,
            "cancel_url": request.cancel_url,
            "notify_url": request.metadata.get("notify_url")
            or f"{self.config.site_url.rstrip('/')}{NOTIFY_PATH}",
            "name_first": first_name,
            "name_last": last_name,
            "email_address": request.customer.email,
            "cell_number": request.customer.phone or "",
            "m_payment_id": request.order_number,
            "amount": f"{total:.2f}",
            "item_name": item_name,
        }
        fields = {key: value for key, value in fields.items() if value != ""}
        fields["signature"] = signature.sign(fields, self.config.passphrase, "md5")
        return fields

    async def initiate_payment(self, request: PaymentRequest) -> PaymentResult:
        fields = self.checkout_fields(request)
        query = "&".join(f"{key}={signature.encode_component(value)}" for key, value in fields.items())
        return PaymentResult(
            payment_id=request.order_number,
            redirect_url=f"{self.config.process_url}?{query}",
        )

    def verify_webhook_signature(self, delivery: WebhookDelivery) -> bool:
        if not self.is_configured():
            return False
        params = dict(delivery.params)
        if delivery.signature and not params.get("signature"):
            params["signature"] = delivery.signature
        return signature.verify(params, self.config.passphrase, "md5")

    async def process_webhook(self, delivery: WebhookDelivery) -> WebhookResult:
        self._require_configured()
        if not self.verify_webhook_signature(delivery):
            raise SignatureError("Invalid PayFast signature", provider=self.name)

        params = delivery.params
        status = STATUS_MAP.get(str(params.get("payment_status", "")), WebhookStatus.PENDING)
        try:
            amount = float(params.get("amount_gross") or 0)
        except (TypeError, ValueError):
            amount = 0.0
        return WebhookResult(
            success=True,
            status=status,
            payment_id=params.get("pf_payment_id"),
            order_id=params.get("m_payment_id"),
            amount=amount,
        )

    async def process_refund(self, request: RefundRequest) -> RefundResult:
        self._require_configured()
        form = {
            "merchant_id": self.config.merchant_id,
            "merchant_key": self.config.merchant_key,
            "pf_payment_id": request.payment_id,
        }
        if request.amount:
            form["amount"] = f"{request.amount:.2f}"
        form["signature"] = signature.sign(form, self.config.passphrase, "md5")

        response = await self._client.request(
            "POST", self.config.refund_url, data=form, operation="refund"
        )
        text = response.text
        if "SUCCESS" not in text:
            raise UpstreamError(text or "Refund failed", provider=self.name, retriable=False)
        match = _REFUND_ID.search(text)
        logger.info("PayFast refund accepted for %s", request.payment_id)
        return RefundResult(refund_id=match.group(1) if match else None, amount=request.amount)

    def supported_payment_methods(self) -> list[str]:
        return [
            "credit_card",
            "debit_card",
            "eft",
            "instant_eft",
            "payfast_wallet",
            "mobicred",
            "masterpass",
        ]
