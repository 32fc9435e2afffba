"""
Accounting connection endpoints (OAuth authorization-code flow).

GET  /accounting                         - Backend that would take a call right now.
GET  /accounting/{backend}/connect       - Redirect to the backend's consent screen.
GET  /accounting/{backend}/callback      - Exchange the code and store the token.
POST /accounting/{backend}/disconnect    - Deactivate the stored credential.
GET  /accounting/{backend}/status        - Connection state, without refreshing.
"""

import hmac
import logging
import secrets
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse

from backoffice.api.deps import get_registries
from backoffice.providers.accounting.selection import resolve_connected_accounting_provider
from backoffice.registries import Registries

logger = logging.getLogger("backoffice.accounting")

router = APIRouter(prefix="/accounting", tags=["accounting"])

STATE_COOKIE_MAX_AGE = 600


def _state_cookie(backend: str) -> str:
    return f"{backend}_oauth_state"


@router.get("")
async def active_backend(registries: Registries = Depends(get_registries)):
    provider = await resolve_connected_accounting_provider(registries.accounting)
    if provider is None:
        return {"provider": None, "connected": False}
    return {"provider": provider.name, "connected": await provider.is_connected()}


@router.get("/{backend}/connect")
async def connect(backend: str, registries: Registries = Depends(get_registries)):
    provider = registries.accounting.require(backend)
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(provider.authorization_url(state), status_code=302)
    response.set_cookie(
        _state_cookie(backend),
        state,
        max_age=STATE_COOKIE_MAX_AGE,
        httponly=True,
        samesite="lax",
    )
    return response


@router.get("/{backend}/callback")
async def callback(
    backend: str,
    request: Request,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    registries: Registries = Depends(get_registries),
):
    provider = registries.accounting.require(backend)
    if error:
        raise HTTPException(status_code=400, detail=f"Authorization was not granted: {error}")
    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")

    expected = request.cookies.get(_state_cookie(backend))
    if not expected or not state or not hmac.compare_digest(expected, state):
        logger.warning("OAuth state mismatch on %s callback", backend)
        raise HTTPException(status_code=400, detail="Invalid OAuth state")

    await provider.handle_callback(code)
    logger.info("%s connected", backend)

    response = JSONResponse({"backend": backend, "connected": True})
    response.delete_cookie(_state_cookie(backend))
    return response


@router.post("/{backend}/disconnect")
async def disconnect(backend: str, registries: Registries = Depends(get_registries)):
    deactivated = await registries.credentials.manager_for(backend).disconnect()
    return {"backend": backend, "connected": False, "deactivated": deactivated}


@router.get("/{backend}/status")
async def status(backend: str, registries: Registries = Depends(get_registries)):
    provider = registries.accounting.get(backend)
    if provider is None:
        raise HTTPException(status_code=404, detail=f"Unknown accounting backend: {backend}")
    state = await registries.credentials.manager_for(backend).connection_status()
    return {"backend": backend, "configured": provider.is_configured(), **state}
