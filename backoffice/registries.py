"""
Startup wiring: one provider registry per domain, built from settings.

Built once in the app lifespan and kept on ``app.state.registries``.
Vendor backends are always registered (a missing credential just leaves
them unconfigured); mock backends only when ``enable_mock_providers`` is on.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.config import Settings
from backoffice.engine.credentials import CredentialManager, CredentialStore
from backoffice.models.enums import ProviderDomain
from backoffice.providers.accounting.base import AccountingProvider
from backoffice.providers.accounting.mock import MockAccountingProvider
from backoffice.providers.accounting.xero import XeroConfig, XeroOAuthClient, XeroProvider
from backoffice.providers.marketplace.base import MarketplaceProvider
from backoffice.providers.marketplace.mock import MockMarketplaceProvider
from backoffice.providers.marketplace.takealot import TakealotConfig, TakealotProvider
from backoffice.providers.payment.base import PaymentProvider
from backoffice.providers.payment.mock import MockPaymentProvider
from backoffice.providers.payment.payfast import PayFastConfig, PayFastProvider
from backoffice.providers.payment.paystack import PaystackConfig, PaystackProvider
from backoffice.providers.registry import ProviderRegistry
from backoffice.providers.shipping.base import ShippingProvider
from backoffice.providers.shipping.courier_guy import CourierGuyConfig, CourierGuyProvider
from backoffice.providers.shipping.mock import MockShippingProvider
from backoffice.providers.shipping.pargo import PargoConfig, PargoProvider
from backoffice.providers.supplier.base import SupplierProvider
from backoffice.providers.supplier.manual import ManualSupplierProvider
from backoffice.providers.supplier.selection import supplier_provider_for
from backoffice.routing.shipping_router import ShippingRouter

logger = logging.getLogger("backoffice.registries")


@dataclass
class Registries:
    payment: ProviderRegistry[PaymentProvider]
    shipping: ProviderRegistry[ShippingProvider]
    accounting: ProviderRegistry[AccountingProvider]
    marketplace: ProviderRegistry[MarketplaceProvider]
    supplier: ProviderRegistry[SupplierProvider]
    credentials: CredentialStore
    shipping_router: ShippingRouter

    def by_domain(self) -> dict[str, ProviderRegistry]:
        return {
            ProviderDomain.PAYMENT.value: self.payment,
            ProviderDomain.SHIPPING.value: self.shipping,
            ProviderDomain.ACCOUNTING.value: self.accounting,
            ProviderDomain.MARKETPLACE.value: self.marketplace,
            ProviderDomain.SUPPLIER.value: self.supplier,
        }


def build_registries(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> Registries:
    timeout = settings.provider_timeout_seconds
    mocks = settings.enable_mock_providers

    payment: ProviderRegistry[PaymentProvider] = ProviderRegistry(ProviderDomain.PAYMENT.value)
    payment.register(
        PayFastProvider(
            PayFastConfig(
                merchant_id=settings.payfast_merchant_id,
                merchant_key=settings.payfast_merchant_key,
                passphrase=settings.payfast_passphrase,
                site_url=settings.site_url,
                sandbox=settings.payfast_sandbox,
            ),
            timeout=timeout,
        )
    )
    payment.register(PaystackProvider(PaystackConfig(secret_key=settings.paystack_secret_key), timeout=timeout))
    if mocks:
        payment.register(MockPaymentProvider())

    shipping: ProviderRegistry[ShippingProvider] = ProviderRegistry(ProviderDomain.SHIPPING.value)
    shipping.register(
        CourierGuyProvider(
            CourierGuyConfig(api_key=settings.courier_guy_api_key, api_url=settings.courier_guy_api_url),
            timeout=timeout,
        )
    )
    shipping.register(
        PargoProvider(
            PargoConfig(
                api_key=settings.pargo_api_key,
                client_id=settings.pargo_client_id,
                api_url=settings.pargo_api_url,
            ),
            timeout=timeout,
        )
    )
    if mocks:
        shipping.register(MockShippingProvider())

    credentials = CredentialStore()
    xero_config = XeroConfig(
        client_id=settings.xero_client_id,
        client_secret=settings.xero_client_secret,
        tenant_id=settings.xero_tenant_id,
        site_url=settings.site_url,
    )
    xero_credentials = CredentialManager(
        "xero",
        XeroOAuthClient(xero_config, timeout=timeout),
        session_factory,
        refresh_margin=timedelta(seconds=settings.token_refresh_margin_seconds),
    )
    credentials.register(xero_credentials)

    accounting: ProviderRegistry[AccountingProvider] = ProviderRegistry(ProviderDomain.ACCOUNTING.value)
    accounting.register(XeroProvider(xero_config, xero_credentials, timeout=timeout))
    if mocks:
        accounting.register(MockAccountingProvider())

    marketplace: ProviderRegistry[MarketplaceProvider] = ProviderRegistry(ProviderDomain.MARKETPLACE.value)
    marketplace.register(
        TakealotProvider(
            TakealotConfig(
                api_key=settings.takealot_api_key,
                seller_id=settings.takealot_seller_id,
                api_url=settings.takealot_api_url,
            ),
            timeout=timeout,
        )
    )
    if mocks:
        marketplace.register(MockMarketplaceProvider())

    supplier: ProviderRegistry[SupplierProvider] = ProviderRegistry(ProviderDomain.SUPPLIER.value)
    supplier.register(ManualSupplierProvider())
    supplier.register(
        supplier_provider_for("api", settings.supplier_api_url, settings.supplier_api_key, timeout=timeout)
    )

    defaults = (
        (payment, settings.default_payment_provider),
        (shipping, settings.default_shipping_provider),
        (accounting, settings.default_accounting_provider),
        (marketplace, settings.default_marketplace_provider),
        (supplier, settings.default_supplier_provider),
    )
    for registry, name in defaults:
        if name:
            registry.set_default(name)

    for registry, _ in defaults:
        logger.info(
            "%s providers: %s (configured: %s)",
            registry.domain,
            ", ".join(p.name for p in registry.all()) or "none",
            ", ".join(p.name for p in registry.get_configured()) or "none",
        )

    return Registries(
        payment=payment,
        shipping=shipping,
        accounting=accounting,
        marketplace=marketplace,
        supplier=supplier,
        credentials=credentials,
        shipping_router=ShippingRouter(shipping, timeout=timeout),
    )
