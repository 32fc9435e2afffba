"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./backoffice.db"
    log_level: str = "INFO"
    site_url: str = "http://localhost:8000"

    enable_mock_providers: bool = False
    provider_timeout_seconds: float = 10.0  # Per outbound vendor call
    token_refresh_margin_seconds: int = 300  # Refresh OAuth tokens 5 min before expiry
    vat_rate: float = 0.15

    # Default backend per domain (must also be configured to be picked)
    default_payment_provider: str = "payfast"
    default_shipping_provider: str = "courier-guy"
    default_accounting_provider: str = "xero"
    default_marketplace_provider: str = "takealot"
    default_supplier_provider: str = "manual"

    # Payment gateways
    payfast_merchant_id: str = ""
    payfast_merchant_key: str = ""
    payfast_passphrase: str = ""
    payfast_sandbox: bool = True
    paystack_secret_key: str = ""

    # Shipping carriers
    courier_guy_api_key: str = ""
    courier_guy_api_url: str = "https://api.thecourierguy.co.za"
    pargo_api_key: str = ""
    pargo_client_id: str = ""
    pargo_api_url: str = "https://api.pargo.co.za/v1"

    # Accounting
    xero_client_id: str = ""
    xero_client_secret: str = ""
    xero_tenant_id: str = ""

    # Marketplaces
    takealot_api_key: str = ""
    takealot_seller_id: str = ""
    takealot_api_url: str = "https://api.takealot.com"

    # Suppliers
    supplier_api_url: str = ""
    supplier_api_key: str = ""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
