from __future__ import annotations

from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    supabase_url: str = ""
    supabase_key: str = ""

    jwt_secret: str = ""
    jwt_expire_minutes: int = 60 * 24 * 7
    cors_origins: str = "http://localhost:5173"

    google_client_id: str = ""
    bcrypt_rounds: int = 10

    log_level: str = "INFO"

    scheduler_enabled: bool = True
    settings_refresh_seconds: int = 5
    ledger_cas_attempts: int = 5

    payment_webhook_secret: str = ""

    # Seed values for the admin settings row when none exists yet.
    default_min_cpm: Decimal = Decimal("0.50")
    default_min_views_for_payout: int = 1000
    default_commission_percentage: Decimal = Decimal("15")
    default_payout_schedule: str = "weekly"

    default_page_size: int = 20
    max_page_size: int = 100

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    @property
    def effective_jwt_secret(self) -> str:
        return self.jwt_secret or self.supabase_key

    @property
    def cors_origin_list(self) -> list[str]:
        if not self.cors_origins.strip():
            return ["*"]
        origins = [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]
        return origins or ["*"]


settings = Settings()
