"""Application configuration.

Loads settings from environment variables with sensible defaults.
A single Settings instance is created at process start and passed
explicitly to the components that need it.
"""

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API
    api_version: str = "0.1.0"
    debug: bool = False

    # Database
    database_url: str = "postgresql+asyncpg://storefront:storefront_dev_password@db:5432/storefront"

    # Authentication (admin routes only; customers are authenticated upstream)
    admin_api_key: str = "dev-admin-key-change-in-production"

    # Pricing
    tax_rate: Decimal = Decimal("0.11")
    usd_to_idr_rate: Decimal = Decimal("15700")
    default_currency: str = "IDR"

    # Shipping
    domestic_country_code: str = "ID"
    biteship_api_key: str = ""
    biteship_base_url: str = "https://api.biteship.com/v1"
    biteship_couriers: str = "jne,tiki,sicepat"
    carrier_timeout_seconds: float = 30.0

    # Warehouse (shipment origin)
    warehouse_name: str = "Storefront Warehouse"
    warehouse_phone: str = "081234567890"
    warehouse_address: str = ""
    warehouse_postal_code: str = ""

    # Payments
    midtrans_server_key: str = ""
    midtrans_is_production: bool = False

    # Order lifecycle
    payment_timeout_hours: int = 24
    auto_complete_days: int = 3
    sweep_concurrency: int = 5
    scheduler_enabled: bool = True
    expiry_interval_seconds: float = 3600.0
    completion_interval_seconds: float = 86400.0

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    @property
    def available_couriers(self) -> list[str]:
        """Couriers the carrier aggregator may be asked for."""
        return [c.strip().lower() for c in self.biteship_couriers.split(",") if c.strip()]

    @property
    def carrier_configured(self) -> bool:
        """Whether domestic rates and bookings can be requested."""
        return bool(self.biteship_api_key and self.warehouse_postal_code)
