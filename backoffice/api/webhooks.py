"""
Payment gateway notification endpoint.

POST /webhooks/{provider} - PayFast posts form fields, Paystack and the mock
gateway post JSON. A bad signature is answered 400 so the gateway retries
on its own schedule; everything accepted is answered with plain ``OK``.
A successful payment is then pushed to the accounting backend; a failure
there is logged and does not change the answer.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.api.deps import get_registries
from backoffice.database import get_session
from backoffice.engine.accounting_sync import sync_paid_order
from backoffice.engine.webhooks import WebhookDelivery, ingest_payment_webhook
from backoffice.errors import SignatureError, ValidationError
from backoffice.models.enums import WebhookStatus
from backoffice.registries import Registries

logger = logging.getLogger("backoffice.webhooks")

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

SIGNATURE_HEADERS = ("x-paystack-signature", "x-signature")


async def _read_delivery(request: Request) -> WebhookDelivery:
    raw_body = await request.body()
    content_type = request.headers.get("content-type", "")

    if content_type.startswith("application/x-www-form-urlencoded") or content_type.startswith("multipart/form-data"):
        form = await request.form()
        params = {key: value for key, value in form.items()}
    elif raw_body:
        try:
            params = json.loads(raw_body)
        except ValueError as e:
            raise ValidationError("Webhook body is neither form data nor JSON") from e
        if not isinstance(params, dict):
            raise ValidationError("Webhook JSON body must be an object")
    else:
        params = {}

    signature = next((request.headers[h] for h in SIGNATURE_HEADERS if h in request.headers), None)
    return WebhookDelivery(params=params, raw_body=raw_body, signature=signature)


@router.post("/{provider}", response_class=PlainTextResponse)
async def receive(
    provider: str,
    request: Request,
    session: AsyncSession = Depends(get_session),
    registries: Registries = Depends(get_registries),
):
    delivery = await _read_delivery(request)
    try:
        result = await ingest_payment_webhook(session, registries.payment, provider, delivery)
    except SignatureError:
        # Already audited; the gateway gets a plain failure acknowledgment.
        return PlainTextResponse("INVALID SIGNATURE", status_code=400)

    if result.status == WebhookStatus.SUCCESS and result.order_id:
        await sync_paid_order(session, result.order_id, registries.accounting)
    return PlainTextResponse("OK")
