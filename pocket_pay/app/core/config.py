from __future__ import annotations

from decimal import Decimal
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Pocket Pay Wallet API"
    database_url: str = "sqlite:///pocket_pay.db"
    log_level: str = "INFO"
    default_currency: str = "USD"

    # Banking
    instant_withdrawal_fee_rate: Decimal = Decimal("0.015")
    external_bank_owner_id: str = "system:external-bank"
    fee_owner_id: str = "system:fees"

    # Risk settings seeded into the risk_setting table on first start.
    # Amounts are minor units.
    large_transfer_threshold: int = 50_000
    block_threshold: int = 500_000
    review_first_transfer: bool = False
    rapid_transfer_count: int = 5
    rapid_transfer_window_minutes: int = 60
    risk_settings_ttl_seconds: float = 5.0

    # Retry policy for lock timeouts and racing inserts
    conflict_retry_attempts: int = 5
    conflict_retry_base_delay: float = 0.01
    conflict_retry_max_delay: float = 0.25

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POCKET_PAY_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
