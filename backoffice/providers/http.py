"""
Shared HTTP plumbing for vendor API adapters.

Every adapter talks to its vendor through a ``VendorClient``, which:
  - applies the per-call timeout from settings
  - turns timeouts and connection errors into retriable ``UpstreamError``
  - turns non-2xx responses into ``UpstreamError`` carrying the status code
    (4xx other than 429 are marked non-retriable)
  - parses JSON bodies, rejecting non-JSON payloads

Adapters only build their own auth headers and request bodies.
"""

import logging
from datetime import datetime
from typing import Any, Optional

import httpx

from backoffice.config import settings
from backoffice.errors import UpstreamError

logger = logging.getLogger("backoffice.http")

RESPONSE_BODY_MAX_LENGTH = 300


class VendorClient:
    """Thin async wrapper around ``httpx.AsyncClient`` for one vendor."""

    def __init__(
        self,
        base_url: str,
        provider: str,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.provider = provider
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self._transport = transport

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}{path}"

    async def request(
        self,
        method: str,
        path: str,
        *,
        headers: Optional[dict[str, str]] = None,
        params: Optional[dict[str, Any]] = None,
        json: Optional[Any] = None,
        data: Optional[dict[str, Any]] = None,
        auth: Optional[httpx.Auth | tuple[str, str]] = None,
        operation: str = "request",
    ) -> httpx.Response:
        """Send one request; raise ``UpstreamError`` on anything but 2xx."""
        url = self._url(path)
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.request(
                    method,
                    url,
                    headers=headers,
                    params=params,
                    json=json,
                    data=data,
                    auth=auth,
                )
        except httpx.TimeoutException as e:
            logger.warning("%s %s timed out: %s", self.provider, operation, e)
            raise UpstreamError(
                f"{self.provider} {operation} timed out",
                provider=self.provider,
            ) from e
        except httpx.RequestError as e:
            logger.warning("%s %s connection error: %s", self.provider, operation, e)
            raise UpstreamError(
                f"Failed to reach {self.provider}: {e}",
                provider=self.provider,
            ) from e

        if response.is_success:
            return response

        status = response.status_code
        body = response.text[:RESPONSE_BODY_MAX_LENGTH]
        logger.warning("%s %s returned HTTP %d: %s", self.provider, operation, status, body)
        raise UpstreamError(
            f"{self.provider} {operation} failed with HTTP {status}: {body}",
            provider=self.provider,
            status_code=status,
            retriable=status == 429 or status >= 500,
        )

    async def request_json(self, method: str, path: str, **kwargs) -> Any:
        """Send a request and return the decoded JSON body."""
        operation = kwargs.get("operation", "request")
        response = await self.request(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{self.provider} {operation} returned a non-JSON body",
                provider=self.provider,
                status_code=response.status_code,
                retriable=False,
            ) from e

    async def get_json(self, path: str, **kwargs) -> Any:
        return await self.request_json("GET", path, **kwargs)

    async def post_json(self, path: str, **kwargs) -> Any:
        return await self.request_json("POST", path, **kwargs)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Vendor timestamps are ISO-8601 strings; anything unparseable is dropped."""
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
