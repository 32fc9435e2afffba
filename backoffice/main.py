"""
Back-office Integration Service - provider orchestration API.

Routes payments, shipping, accounting, marketplace and supplier calls to
whichever vendor backends are configured, ingests gateway webhooks, keeps
OAuth credentials fresh, and converts accepted B2B quotes into orders.

Start the server:
    uvicorn backoffice.main:app --reload
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from backoffice.api.accounting import router as accounting_router
from backoffice.api.health import router as health_router
from backoffice.api.marketplace import router as marketplace_router
from backoffice.api.orders import router as orders_router
from backoffice.api.providers import router as providers_router
from backoffice.api.quotes import router as quotes_router
from backoffice.api.shipping import router as shipping_router
from backoffice.api.webhooks import router as webhooks_router
from backoffice.config import settings
from backoffice.database import async_session, init_db
from backoffice.errors import IntegrationError, ValidationError
from backoffice.registries import build_registries

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger("backoffice")

STATUS_FOR_KIND = {
    "validation": 422,
    "not_found": 404,
    "state": 409,
    "signature": 400,
    "configuration": 503,
    "upstream": 502,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database and provider registries on startup."""
    await init_db()
    app.state.registries = build_registries(settings, async_session)
    yield


app = FastAPI(
    title="Back-office Integration Service",
    description=(
        "Provider orchestration for an e-commerce back office: payment gateways, "
        "shipping carriers, accounting, marketplaces and suppliers behind one "
        "registry per domain, with webhook ingestion, OAuth credential lifecycle "
        "and exactly-once quote-to-order conversion."
    ),
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    status_code = STATUS_FOR_KIND.get(exc.kind, 500)
    if status_code >= 500:
        logger.error("%s %s failed (%s): %s", request.method, request.url.path, exc.kind, exc)
    body = {"error": exc.kind, "detail": exc.message}
    if exc.provider:
        body["provider"] = exc.provider
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=body)


app.include_router(health_router)
app.include_router(quotes_router, prefix="/api")
app.include_router(orders_router, prefix="/api")
app.include_router(shipping_router, prefix="/api")
app.include_router(webhooks_router, prefix="/api")
app.include_router(accounting_router, prefix="/api")
app.include_router(marketplace_router, prefix="/api")
app.include_router(providers_router, prefix="/api")
