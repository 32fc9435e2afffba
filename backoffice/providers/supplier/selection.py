"""Pick the supplier backend that matches a supplier record."""

from typing import Optional

from backoffice.providers.supplier.api import ApiSupplierProvider, SupplierApiConfig
from backoffice.providers.supplier.base import SupplierProvider
from backoffice.providers.supplier.manual import ManualSupplierProvider


def supplier_provider_for(
    provider_type: Optional[str],
    api_url: Optional[str] = None,
    api_key: Optional[str] = None,
    timeout: Optional[float] = None,
) -> SupplierProvider:
    """API suppliers get an adapter bound to their own endpoint; everyone else is manual."""
    if provider_type == "api":
        return ApiSupplierProvider(SupplierApiConfig(api_url=api_url or "", api_key=api_key or ""), timeout=timeout)
    return ManualSupplierProvider()
