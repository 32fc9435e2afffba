"""
Named-provider registry, one instance per integration domain.

Payment, shipping, accounting, marketplace and supplier backends are all
looked up the same way: by name, filtered to the ones whose credentials are
present, or through a default that falls back to the first configured
backend. Registries are built once at startup (see
``backoffice.registries``) and passed to whatever needs them.
"""

import logging
from typing import Generic, Optional, Protocol, TypeVar

from backoffice.errors import ConfigurationError

logger = logging.getLogger("backoffice.registry")


class Provider(Protocol):
    """Descriptor every backend exposes, whatever its domain."""

    @property
    def name(self) -> str: ...

    @property
    def display_name(self) -> str: ...

    def is_configured(self) -> bool: ...


P = TypeVar("P", bound=Provider)


class ProviderRegistry(Generic[P]):
    """
    Ordered map of provider name to backend.

    Registering a name twice replaces the backend but keeps the original
    position, so fallback order only depends on first registration.
    """

    def __init__(self, domain: str, default: Optional[str] = None):
        self.domain = domain
        self._providers: dict[str, P] = {}
        self._default = default

    def register(self, provider: P) -> None:
        if provider.name in self._providers:
            logger.info("Replacing %s provider %s", self.domain, provider.name)
        self._providers[provider.name] = provider

    def get(self, name: str) -> Optional[P]:
        """Return the named provider, configured or not."""
        return self._providers.get(name)

    def all(self) -> list[P]:
        return list(self._providers.values())

    def get_configured(self) -> list[P]:
        return [p for p in self._providers.values() if p.is_configured()]

    @property
    def default_name(self) -> Optional[str]:
        return self._default

    def set_default(self, name: str) -> None:
        """Point the default at a registered provider; unknown names are ignored."""
        if name not in self._providers:
            logger.warning("Ignoring unknown default %s provider: %s", self.domain, name)
            return
        self._default = name

    def get_default(self) -> Optional[P]:
        """
        Return the configured default, else the first configured provider.

        A default that is registered but lacks credentials is skipped.
        """
        if self._default:
            provider = self._providers.get(self._default)
            if provider is not None and provider.is_configured():
                return provider
        configured = self.get_configured()
        return configured[0] if configured else None

    def require(self, name: str) -> P:
        """Return the named provider or raise if it is missing or unconfigured."""
        provider = self._providers.get(name)
        if provider is None:
            raise ConfigurationError(
                f"No {self.domain} provider registered as '{name}'", provider=name
            )
        if not provider.is_configured():
            raise ConfigurationError(
                f"{self.domain.capitalize()} provider '{name}' is not configured",
                provider=name,
            )
        return provider

    def require_default(self) -> P:
        provider = self.get_default()
        if provider is None:
            raise ConfigurationError(f"No {self.domain} provider is configured")
        return provider

    def __contains__(self, name: str) -> bool:
        return name in self._providers

    def __len__(self) -> int:
        return len(self._providers)
