"""
Error taxonomy for the integration layer.

Five categories, each with a different handling policy:

  - ConfigurationError: a backend lacks credentials or is not registered.
    Never retried; surfaced to the operator.
  - UpstreamError: a vendor call failed, timed out or returned non-success.
    Dropped by fan-out callers, surfaced by single-provider callers.
  - ValidationError: malformed request shape, rejected before any network call.
  - SignatureError: webhook signature missing or mismatched. Always fatal
    to that webhook.
  - StateError: an operation violates an entity's lifecycle invariant.
    Rejected with no mutation.

Fan-out code does not use try/except at every call site; it wraps each
provider call with ``capture`` and gets an ``Outcome`` back, so "drop and
continue" and "must surface" stay distinguishable.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Generic, Optional, TypeVar

T = TypeVar("T")


class IntegrationError(Exception):
    """Base exception for every error raised by the integration layer."""

    kind = "integration"

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.provider = provider


class ConfigurationError(IntegrationError):
    """Provider is missing, unregistered, or lacks required credentials."""

    kind = "configuration"


class UpstreamError(IntegrationError):
    """A vendor API call failed or returned a non-success response."""

    kind = "upstream"

    def __init__(
        self,
        message: str,
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
        retriable: bool = True,
    ):
        super().__init__(message, provider=provider)
        self.status_code = status_code
        self.retriable = retriable


class ValidationError(IntegrationError):
    """Request shape is invalid (negative quantity, missing address field, ...)."""

    kind = "validation"

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or [message]


class SignatureError(IntegrationError):
    """Inbound notification signature is missing or does not match."""

    kind = "signature"


class StateError(IntegrationError):
    """Operation is not allowed in the entity's current lifecycle state."""

    kind = "state"


class NotFoundError(IntegrationError):
    """Referenced entity does not exist."""

    kind = "not_found"


@dataclass
class Outcome(Generic[T]):
    """Result of a single provider call: either a value or a captured error."""

    provider: str
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> Optional[str]:
        if self.error is None:
            return None
        if isinstance(self.error, IntegrationError):
            return self.error.kind
        if isinstance(self.error, asyncio.TimeoutError):
            return UpstreamError.kind
        return "unexpected"


async def capture(provider: str, call: Awaitable[T], timeout: Optional[float] = None) -> Outcome[T]:
    """
    Await a provider call and fold any failure into an Outcome.

    A timeout is treated like any other upstream failure. Cancellation of the
    caller is not swallowed.
    """
    try:
        if timeout is not None:
            value = await asyncio.wait_for(call, timeout=timeout)
        else:
            value = await call
        return Outcome(provider=provider, value=value)
    except asyncio.CancelledError:
        raise
    except Exception as e:  # noqa: BLE001 - folded into the Outcome
        return Outcome(provider=provider, error=e)


def describe(error: Any) -> str:
    """Short human-readable description of a captured error."""
    if isinstance(error, asyncio.TimeoutError):
        return "timed out"
    return str(error) or error.__class__.__name__
