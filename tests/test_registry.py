"""Tests for the per-domain provider registry and cross-provider helpers."""

import pytest

from backoffice.config import Settings
from backoffice.database import build_engine, build_session_factory
from backoffice.errors import ConfigurationError
from backoffice.providers.accounting.mock import MockAccountingProvider
from backoffice.providers.accounting.selection import resolve_connected_accounting_provider
from backoffice.providers.registry import ProviderRegistry
from backoffice.providers.supplier.api import ApiSupplierProvider
from backoffice.providers.supplier.base import SupplierOrder, SupplierProduct
from backoffice.providers.supplier.manual import ManualSupplierProvider
from backoffice.providers.supplier.selection import supplier_provider_for
from backoffice.registries import build_registries
from tests.stubs import StubCarrier


class TestRegistration:
    def test_registration_order_preserved(self):
        registry = ProviderRegistry("shipping")
        for name in ("a", "b", "c"):
            registry.register(StubCarrier(name))
        assert [p.name for p in registry.all()] == ["a", "b", "c"]

    def test_overwrite_keeps_position_and_last_wins(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a", cost=1))
        registry.register(StubCarrier("b"))
        registry.register(StubCarrier("a", cost=2))
        assert [p.name for p in registry.all()] == ["a", "b"]
        assert registry.get("a").cost == 2

    def test_get_unknown_returns_none(self):
        assert ProviderRegistry("shipping").get("nope") is None

    def test_registered_is_not_assumed_configured(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a", configured=False))
        assert registry.get("a") is not None
        assert registry.get_configured() == []


class TestDefaults:
    def test_configured_default_wins(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a"))
        registry.register(StubCarrier("b"))
        registry.set_default("b")
        assert registry.get_default().name == "b"

    def test_unconfigured_default_falls_back_to_first_configured(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a", configured=False))
        registry.register(StubCarrier("b"))
        registry.register(StubCarrier("c"))
        registry.set_default("a")
        assert registry.get_default().name == "b"

    def test_no_configured_provider_means_no_default(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a", configured=False))
        assert registry.get_default() is None

    def test_unknown_default_ignored(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("a"))
        registry.set_default("a")
        registry.set_default("ghost")
        assert registry.default_name == "a"

    def test_require_raises_for_missing_and_unconfigured(self):
        registry = ProviderRegistry("shipping")
        registry.register(StubCarrier("off", configured=False))
        with pytest.raises(ConfigurationError):
            registry.require("ghost")
        with pytest.raises(ConfigurationError):
            registry.require("off")
        with pytest.raises(ConfigurationError):
            registry.require_default()


class TestAccountingResolution:
    @pytest.mark.asyncio
    async def test_connected_default_preferred(self):
        registry = ProviderRegistry("accounting", default="mock")
        registry.register(MockAccountingProvider())
        provider = await resolve_connected_accounting_provider(registry)
        assert provider.name == "mock"

    @pytest.mark.asyncio
    async def test_empty_registry_resolves_to_none(self):
        assert await resolve_connected_accounting_provider(ProviderRegistry("accounting")) is None


class TestSupplierSelection:
    def test_api_type_gets_api_adapter(self):
        provider = supplier_provider_for("api", "https://supplier.example", "key")
        assert isinstance(provider, ApiSupplierProvider)
        assert provider.is_configured()
        assert provider.supports_realtime_sync()
        assert provider.recommended_sync_schedule() == "hourly"

    def test_anything_else_is_manual(self):
        for provider_type in (None, "manual", "csv"):
            provider = supplier_provider_for(provider_type)
            assert isinstance(provider, ManualSupplierProvider)
            assert provider.is_configured()
            assert provider.recommended_sync_schedule() == "manual"

    def test_api_without_credentials_is_unconfigured(self):
        assert not supplier_provider_for("api").is_configured()

    def test_manual_validation(self):
        manual = ManualSupplierProvider()
        ok = SupplierProduct(supplier_sku="SKU-1", name="Drill", price=10, quantity=0)
        bad = SupplierProduct(supplier_sku="", name="Dr", price=0, quantity=-1)
        assert manual.validate_product(ok).valid
        assert len(manual.validate_product(bad).errors) == 4

    @pytest.mark.asyncio
    async def test_manual_order_reference(self):
        placed = await ManualSupplierProvider().place_order(SupplierOrder(order_id="ORD-1", items=[], total=0))
        assert placed.supplier_order_id.startswith("MANUAL-")


class TestStartupWiring:
    def test_vendor_backends_registered_but_unconfigured_without_credentials(self):
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        registries = build_registries(Settings(_env_file=None), build_session_factory(engine))
        assert "payfast" in registries.payment
        assert "courier-guy" in registries.shipping
        assert registries.payment.get_default() is None
        assert registries.shipping.get_default() is None
        assert "mock" not in registries.payment
        assert registries.supplier.get_default().name == "manual"
        assert registries.credentials.backends() == ["xero"]

    def test_mocks_registered_when_enabled(self):
        engine = build_engine("sqlite+aiosqlite:///:memory:")
        registries = build_registries(
            Settings(_env_file=None, enable_mock_providers=True),
            build_session_factory(engine),
        )
        assert registries.payment.get_default().name == "mock"
        assert registries.shipping.get_default().name == "mock"
        assert registries.marketplace.get_default().name == "mock"
        assert registries.accounting.get_default().name == "mock"
