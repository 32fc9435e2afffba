"""End-to-end tests through the HTTP API."""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest
import pytest_asyncio

from backoffice.config import Settings
from backoffice.database import get_session
from backoffice.main import app
from backoffice.registries import build_registries

QUOTE_BODY = {
    "customer_name": "Lerato Mokoena",
    "customer_email": "lerato@example.co.za",
    "items": [
        {"product_name": "Solar panel 450W", "quantity": 4, "unit_price": 2100.0},
        {"product_name": "Mounting kit", "quantity": 1, "unit_price": 650.0},
    ],
}


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_session():
        async with session_factory() as session:
            yield session

    settings = Settings(
        _env_file=None,
        enable_mock_providers=True,
        default_payment_provider="mock",
        payfast_merchant_id="10000100",
        payfast_merchant_key="46f0cd694581a",
        payfast_passphrase="jt7NOE43FZPn",
    )
    app.state.registries = build_registries(settings, session_factory)
    app.dependency_overrides[get_session] = override_session
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


async def _accepted_quote(client) -> dict:
    created = await client.post("/api/quotes", json=QUOTE_BODY)
    assert created.status_code == 201
    quote = created.json()
    accepted = await client.post(f"/api/quotes/{quote['id']}/status", json={"status": "ACCEPTED"})
    assert accepted.status_code == 200
    return accepted.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestQuoteEndpoints:
    @pytest.mark.asyncio
    async def test_create_and_fetch(self, client):
        created = (await client.post("/api/quotes", json=QUOTE_BODY)).json()
        assert created["status"] == "DRAFT"
        assert created["subtotal"] == 9050.0
        assert created["total"] == 10407.5

        fetched = await client.get(f"/api/quotes/{created['id']}")
        assert fetched.status_code == 200
        assert [h["status"] for h in fetched.json()["status_history"]] == ["DRAFT"]

    @pytest.mark.asyncio
    async def test_empty_items_rejected(self, client):
        response = await client.post("/api/quotes", json={**QUOTE_BODY, "items": []})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_quote_is_404(self, client):
        response = await client.get("/api/quotes/nope")
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    @pytest.mark.asyncio
    async def test_illegal_transition_is_409(self, client):
        quote = (await client.post("/api/quotes", json=QUOTE_BODY)).json()
        await client.post(f"/api/quotes/{quote['id']}/status", json={"status": "REJECTED"})
        response = await client.post(f"/api/quotes/{quote['id']}/status", json={"status": "SENT"})
        assert response.status_code == 409


class TestConversionAndPayment:
    @pytest.mark.asyncio
    async def test_convert_then_pay_by_webhook(self, client):
        quote = await _accepted_quote(client)

        converted = await client.post(f"/api/quotes/{quote['id']}/convert")
        assert converted.status_code == 200
        result = converted.json()
        assert result["payment_error"] is None

        again = await client.post(f"/api/quotes/{quote['id']}/convert")
        assert again.status_code == 409

        payment_id = parse_qs(urlparse(result["payment_url"]).query)["paymentId"][0]
        webhook = await client.post("/api/webhooks/mock", json={"payment_id": payment_id, "status": "success"})
        assert webhook.status_code == 200
        assert webhook.text == "OK"

        order = (await client.get(f"/api/orders/{result['order_id']}")).json()
        assert order["payment_status"] == "PAID"
        assert order["status"] == "PROCESSING"
        assert order["quote_id"] == quote["id"]

        trace = (await client.get(f"/api/orders/{result['order_id']}/trace")).json()
        actions = {entry["action"] for entry in trace["audit_trail"]}
        assert {"quote_converted", "webhook_processed"} <= actions

    @pytest.mark.asyncio
    async def test_accept_first(self, client):
        quote = (await client.post("/api/quotes", json=QUOTE_BODY)).json()
        response = await client.post(f"/api/quotes/{quote['id']}/convert", json={"accept_first": True})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_draft_quote_not_converted(self, client):
        quote = (await client.post("/api/quotes", json=QUOTE_BODY)).json()
        response = await client.post(f"/api/quotes/{quote['id']}/convert")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_paid_order_synced_then_refunded(self, client):
        quote = await _accepted_quote(client)
        result = (await client.post(f"/api/quotes/{quote['id']}/convert")).json()
        order_id = result["order_id"]
        payment_id = parse_qs(urlparse(result["payment_url"]).query)["paymentId"][0]
        await client.post("/api/webhooks/mock", json={"payment_id": payment_id, "status": "success"})

        order = (await client.get(f"/api/orders/{order_id}")).json()
        assert order["payment_provider"] == "mock"
        assert order["accounting_invoice_id"] is not None

        sync = await client.post(f"/api/orders/{order_id}/accounting-sync")
        assert sync.status_code == 200
        assert sync.json()["invoice_created"] is False
        assert sync.json()["invoice_id"] == order["accounting_invoice_id"]

        too_much = await client.post(f"/api/orders/{order_id}/refund", json={"amount": order["total"] + 1})
        assert too_much.status_code == 422

        refund = await client.post(f"/api/orders/{order_id}/refund", json={"reason": "Customer cancelled"})
        assert refund.status_code == 200
        assert refund.json()["payment_status"] == "REFUNDED"
        assert refund.json()["amount"] == order["total"]

        again = await client.post(f"/api/orders/{order_id}/refund", json={})
        assert again.status_code == 409

        late = await client.post("/api/webhooks/mock", json={"payment_id": payment_id, "status": "pending"})
        assert late.text == "OK"
        trace = (await client.get(f"/api/orders/{order_id}/trace")).json()
        assert trace["order"]["payment_status"] == "REFUNDED"
        actions = [entry["action"] for entry in trace["audit_trail"]]
        assert {"accounting_invoice_created", "accounting_payment_recorded", "order_refunded", "webhook_stale"} <= set(
            actions
        )

    @pytest.mark.asyncio
    async def test_refund_unknown_order_is_404(self, client):
        response = await client.post("/api/orders/nope/refund", json={})
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_bad_payfast_signature_is_400(self, client):
        response = await client.post(
            "/api/webhooks/payfast",
            data={"m_payment_id": "ORD-1", "payment_status": "COMPLETE", "signature": "0" * 32},
        )
        assert response.status_code == 400
        assert response.text == "INVALID SIGNATURE"


class TestShippingAndProviders:
    @pytest.mark.asyncio
    async def test_mock_quote(self, client):
        response = await client.post(
            "/api/shipping/quotes",
            json={
                "origin": {"city": "Cape Town", "province": "Western Cape", "postal_code": "8001"},
                "destination": {"city": "Johannesburg", "province": "Gauteng", "postal_code": "2000"},
                "weight": 5,
            },
        )
        assert response.status_code == 200
        assert [q["provider"] for q in response.json()] == ["mock"]

    @pytest.mark.asyncio
    async def test_invalid_shipping_request_is_422(self, client):
        response = await client.post(
            "/api/shipping/quotes",
            json={
                "origin": {"city": "", "province": "Western Cape", "postal_code": "8001"},
                "destination": {"city": "Johannesburg", "province": "Gauteng", "postal_code": "2000"},
                "weight": 0,
            },
        )
        assert response.status_code == 422
        assert "weight must be greater than 0" in response.json()["errors"]

    @pytest.mark.asyncio
    async def test_provider_overview(self, client):
        overview = (await client.get("/api/providers")).json()
        assert overview["payment"]["active"] == "mock"
        payfast = next(p for p in overview["payment"]["providers"] if p["name"] == "payfast")
        assert payfast["configured"] is True
        assert overview["accounting"]["active"] == "mock"

    @pytest.mark.asyncio
    async def test_waybill_booked_then_cancelled(self, client):
        address = {"name": "Warehouse", "address": "1 Main Rd", "city": "Johannesburg", "province": "Gauteng", "postal_code": "2000"}
        booked = await client.post(
            "/api/shipping/waybills",
            json={
                "order_id": "ORD-1",
                "origin": address,
                "destination": {**address, "city": "Pretoria", "postal_code": "0002"},
                "items": [{"description": "Tiles", "quantity": 2, "weight": 4, "value": 300}],
                "reference": "ORD-1",
                "provider": "mock",
            },
        )
        assert booked.status_code == 201
        waybill = booked.json()["waybill_number"]

        cancelled = await client.post(f"/api/shipping/waybills/{waybill}/cancel", json={"provider": "mock"})
        assert cancelled.status_code == 200
        assert cancelled.json()["cancelled"] is True

        unknown = await client.post("/api/shipping/waybills/MOCKNOPE/cancel", json={"provider": "mock"})
        assert unknown.status_code == 409

        no_carrier = await client.post(f"/api/shipping/waybills/{waybill}/cancel", json={"provider": "dhl"})
        assert no_carrier.status_code == 503
