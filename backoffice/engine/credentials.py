"""
OAuth credential lifecycle for token-based accounting backends.

Per backend the credential moves through:

    NO_CREDENTIAL -> ACTIVE -> (REFRESHING) -> ACTIVE
                                            -> DISCONNECTED

Invariants:
  - At most one credential per backend has ``is_active`` set. Storing a new
    token deactivates the previous ones in the same transaction.
  - A token is refreshed once it is within ``refresh_margin`` of expiry.
    A failed refresh deactivates the credential (the user must reconnect);
    it is not retried within the same call.
  - Refresh and store for one backend are serialized by an asyncio.Lock,
    so concurrent callers never refresh the same token twice.
  - Credential rows are deactivated, never deleted.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.audit.logger import log_event
from backoffice.errors import ConfigurationError, IntegrationError
from backoffice.models.records import OAuthCredential, as_utc

logger = logging.getLogger("backoffice.credentials")


@dataclass
class TokenResponse:
    """Token endpoint payload, as returned by code exchange and refresh."""

    access_token: str
    refresh_token: str
    expires_in: int  # Seconds
    scope: Optional[str] = None
    token_type: str = "Bearer"

    @classmethod
    def from_payload(cls, payload: dict) -> "TokenResponse":
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            expires_in=int(payload["expires_in"]),
            scope=payload.get("scope"),
            token_type=payload.get("token_type", "Bearer"),
        )


@dataclass
class ActiveToken:
    """Snapshot of the active credential handed to API callers."""

    access_token: str
    refresh_token: str
    expires_at: datetime
    scope: Optional[str] = None


class OAuthClient(Protocol):
    """Token endpoint operations a backend's OAuth client must offer."""

    def authorization_url(self, state: str) -> str: ...

    async def exchange_code(self, code: str) -> TokenResponse: ...

    async def refresh(self, refresh_token: str) -> TokenResponse: ...


def _snapshot(credential: OAuthCredential) -> ActiveToken:
    return ActiveToken(
        access_token=credential.access_token,
        refresh_token=credential.refresh_token,
        expires_at=as_utc(credential.expires_at),
        scope=credential.scope,
    )


class CredentialManager:
    """Owns the OAuth credential of one accounting backend."""

    def __init__(
        self,
        backend: str,
        oauth_client: OAuthClient,
        session_factory: async_sessionmaker[AsyncSession],
        refresh_margin: timedelta = timedelta(minutes=5),
    ):
        self.backend = backend
        self.oauth_client = oauth_client
        self._session_factory = session_factory
        self.refresh_margin = refresh_margin
        self._lock = asyncio.Lock()

    async def _load_active(self, session: AsyncSession) -> Optional[OAuthCredential]:
        result = await session.execute(
            select(OAuthCredential)
            .where(OAuthCredential.backend == self.backend, OAuthCredential.is_active.is_(True))
            .order_by(OAuthCredential.created_at.desc(), OAuthCredential.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _deactivate_all(self, session: AsyncSession, now: datetime) -> int:
        result = await session.execute(
            update(OAuthCredential)
            .where(OAuthCredential.backend == self.backend, OAuthCredential.is_active.is_(True))
            .values(is_active=False, deactivated_at=now)
        )
        return result.rowcount or 0

    async def get_active_token(self) -> Optional[ActiveToken]:
        """
        Return a usable token, refreshing it first when close to expiry.

        Returns None when there is no active credential or the refresh failed.
        """
        async with self._lock:
            async with self._session_factory() as session:
                credential = await self._load_active(session)
                if credential is None:
                    return None

                now = datetime.now(timezone.utc)
                if now + self.refresh_margin < as_utc(credential.expires_at):
                    return _snapshot(credential)

                logger.info("Refreshing %s token (expires %s)", self.backend, credential.expires_at)
                try:
                    token = await self.oauth_client.refresh(credential.refresh_token)
                except IntegrationError as e:
                    logger.error("Token refresh for %s failed, disconnecting: %s", self.backend, e)
                    credential.is_active = False
                    credential.deactivated_at = now
                    await log_event(
                        session,
                        action="credential_refresh_failed",
                        entity_type="credential",
                        entity_id=self.backend,
                        details={"error": str(e)},
                    )
                    await session.commit()
                    return None

                credential.access_token = token.access_token
                credential.refresh_token = token.refresh_token
                credential.expires_at = now + timedelta(seconds=token.expires_in)
                credential.scope = token.scope
                credential.last_refreshed_at = now
                await log_event(
                    session,
                    action="credential_refreshed",
                    entity_type="credential",
                    entity_id=self.backend,
                    details={"expires_at": credential.expires_at.isoformat()},
                )
                await session.commit()
                return _snapshot(credential)

    async def store_new_token(self, token: TokenResponse) -> ActiveToken:
        """Replace whatever is active with a freshly issued token, atomically."""
        async with self._lock:
            async with self._session_factory() as session:
                now = datetime.now(timezone.utc)
                replaced = await self._deactivate_all(session, now)
                credential = OAuthCredential(
                    backend=self.backend,
                    access_token=token.access_token,
                    refresh_token=token.refresh_token,
                    expires_at=now + timedelta(seconds=token.expires_in),
                    scope=token.scope,
                    is_active=True,
                    created_at=now,
                )
                session.add(credential)
                await log_event(
                    session,
                    action="credential_stored",
                    entity_type="credential",
                    entity_id=self.backend,
                    details={"replaced": replaced, "scope": token.scope},
                )
                await session.commit()
                logger.info("Stored new %s credential (replaced %d)", self.backend, replaced)
                return _snapshot(credential)

    async def handle_callback(self, code: str) -> ActiveToken:
        """
        Complete the authorization-code flow.

        An exchange failure propagates as UpstreamError and nothing is stored.
        """
        token = await self.oauth_client.exchange_code(code)
        return await self.store_new_token(token)

    async def disconnect(self) -> int:
        """Deactivate every active credential. Returns how many were active."""
        async with self._lock:
            async with self._session_factory() as session:
                count = await self._deactivate_all(session, datetime.now(timezone.utc))
                if count:
                    await log_event(
                        session,
                        action="credential_disconnected",
                        entity_type="credential",
                        entity_id=self.backend,
                        details={"deactivated": count},
                    )
                await session.commit()
                return count

    async def connection_status(self) -> dict:
        """Current connection state, read without triggering a refresh."""
        async with self._session_factory() as session:
            credential = await self._load_active(session)
            if credential is None:
                return {"connected": False, "expires_at": None, "last_refreshed_at": None}
            return {
                "connected": True,
                "expires_at": as_utc(credential.expires_at),
                "last_refreshed_at": as_utc(credential.last_refreshed_at),
            }

    async def is_connected(self) -> bool:
        return await self.get_active_token() is not None


class CredentialStore:
    """Credential managers keyed by backend name, built once at startup."""

    def __init__(self):
        self._managers: dict[str, CredentialManager] = {}

    def register(self, manager: CredentialManager) -> None:
        self._managers[manager.backend] = manager

    def manager_for(self, backend: str) -> CredentialManager:
        manager = self._managers.get(backend)
        if manager is None:
            raise ConfigurationError(f"No OAuth credentials are managed for '{backend}'", provider=backend)
        return manager

    def backends(self) -> list[str]:
        return list(self._managers)
