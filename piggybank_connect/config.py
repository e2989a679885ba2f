"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./piggybank_connect.db"

    # Payment processor
    processor_api_base: str = "https://api.stripe.com"
    processor_secret_key: str = ""
    processor_webhook_secret: str = ""
    webhook_tolerance_seconds: int = 300

    # Onboarding links
    public_base_url: str = "https://creditkid.vercel.app"
    onboarding_return_path: str = "banking/setup/success"
    onboarding_refresh_path: str = "banking/setup/stripe-connection?refresh=true"

    # Service
    service_name: str = "piggybank-connect"
    log_level: str = "INFO"

    # HTTP Client
    http_timeout_seconds: float = 10.0

    # Per-owner lease
    lease_ttl_seconds: float = 30.0
    lease_wait_seconds: float = 5.0
    lease_poll_interval_seconds: float = 0.1

    # Issuing and payouts
    default_currency: str = "usd"
    max_spending_limit_cents: int = 50_000
    min_topup_cents: int = 100
    sandbox_phone: str = "+15555555555"
    lenient_dob: bool = False

    @property
    def test_mode(self) -> bool:
        """True when talking to the processor's sandbox"""
        return self.processor_secret_key.startswith("sk_test_")


settings = Settings()
