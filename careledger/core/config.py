"""
Configuration helpers for the care ledger backend.

Routers/services read a single Settings object instead of touching os.environ
directly (database URL, SMTP, recommendation provider, ledger thresholds).
"""

from dataclasses import dataclass
from functools import lru_cache
import os


@dataclass(frozen=True)
class Settings:
    """Typed view of environment variables."""

    app_env: str
    database_url: str
    smtp_host: str
    smtp_port: int
    smtp_user: str
    smtp_password: str
    smtp_from: str
    openai_api_key: str
    recommendation_model: str
    recommendation_timeout_seconds: float
    tier_gold_threshold: int
    tier_royal_threshold: int
    low_balance_threshold: int
    notification_max_attempts: int
    sign_rate_limit: int
    sign_rate_window_seconds: float
    log_level: str


@lru_cache
def get_settings() -> Settings:
    """Read the current environment and build a Settings instance."""
    def _int(value: str, default: int = 0) -> int:
        try:
            return int(value)
        except (TypeError, ValueError):
            return default

    def _float(value: str, default: float = 0.0) -> float:
        try:
            return float(value)
        except (TypeError, ValueError):
            return default

    return Settings(
        app_env=(os.getenv("APP_ENV") or "dev").lower(),
        database_url=os.getenv("DATABASE_URL", ""),
        smtp_host=os.getenv("SMTP_HOST", ""),
        smtp_port=_int(os.getenv("SMTP_PORT", "465"), 465),
        smtp_user=os.getenv("SMTP_USER", ""),
        smtp_password=os.getenv("SMTP_PASSWORD", ""),
        smtp_from=os.getenv("SMTP_FROM", os.getenv("SMTP_USER", "")),
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        recommendation_model=os.getenv("RECOMMENDATION_MODEL", "gpt-4o-mini"),
        recommendation_timeout_seconds=_float(os.getenv("RECOMMENDATION_TIMEOUT_SECONDS", "5"), 5.0),
        tier_gold_threshold=_int(os.getenv("TIER_GOLD_THRESHOLD", "5000000"), 5_000_000),
        tier_royal_threshold=_int(os.getenv("TIER_ROYAL_THRESHOLD", "10000000"), 10_000_000),
        low_balance_threshold=_int(os.getenv("LOW_BALANCE_THRESHOLD", "500000"), 500_000),
        notification_max_attempts=_int(os.getenv("NOTIFICATION_MAX_ATTEMPTS", "3"), 3),
        sign_rate_limit=_int(os.getenv("SIGN_RATE_LIMIT", "30"), 30),
        sign_rate_window_seconds=_float(os.getenv("SIGN_RATE_WINDOW_SECONDS", "60"), 60.0),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").upper(),
    )
