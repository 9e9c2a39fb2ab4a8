"""Runtime configuration for the checkout core.

Values are read from the environment with the ``CHECKOUT_`` prefix, e.g.
``CHECKOUT_GATEWAY_KEY_SECRET``. ``PROTEAN_ENV`` continues to select the
Protean config overlay; ``environment`` here only gates behaviour such as
refusing the fake gateway in production.
"""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="CHECKOUT_", extra="ignore")

    environment: str = "development"
    currency: str = "INR"

    # Hosted payment gateway
    gateway: str = "fake"  # fake | razorpay
    gateway_key_id: str = ""
    gateway_key_secret: str = ""
    gateway_base_url: str = "https://api.razorpay.com"
    gateway_timeout_seconds: float = 15.0
    gateway_retry_attempts: int = 3
    gateway_retry_base_delay: float = 0.5
    gateway_retry_max_delay: float = 5.0
    gateway_outcome_timeout_seconds: float = 900.0
    fake_gateway_secret: str = "fake-gateway-secret"

    # Trusted verification boundary
    verify_endpoint_url: str = ""
    internal_token_secret: str = "dev-internal-secret-change"
    internal_token_issuer: str = "checkout-core"
    internal_token_ttl_seconds: int = 300

    # Order persistence
    service_role_key: str = ""
    allow_guest_orders: bool = True

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def fallback_configured(self) -> bool:
        return bool(self.service_role_key)


@lru_cache
def get_settings() -> Settings:
    return Settings()
