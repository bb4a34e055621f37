from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict

PAYPAL_SANDBOX_BASE = "https://api-m.sandbox.paypal.com"
PAYPAL_LIVE_BASE = "https://api-m.paypal.com"


class Settings(BaseSettings):
    app_host: str = "0.0.0.0"
    app_port: int = 4000
    env: str = "development"
    log_level: str = "INFO"

    database_url: str
    session_secret: str
    frontend_origin: str = "http://localhost:5173"

    stripe_secret_key: str

    paypal_client_id: str
    paypal_client_secret: str
    paypal_api_base: Optional[str] = None

    payhere_merchant_id: str
    payhere_merchant_secret: str

    default_currency: str = "USD"
    brand_name: str = "Travel Booking"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    @property
    def is_production(self) -> bool:
        return self.env == "production"

    @property
    def paypal_base_url(self) -> str:
        if self.paypal_api_base:
            return self.paypal_api_base.rstrip("/")
        return PAYPAL_LIVE_BASE if self.is_production else PAYPAL_SANDBOX_BASE


settings = Settings()
