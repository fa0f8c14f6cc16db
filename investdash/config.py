from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class Settings:
    """Application configuration loaded from environment variables."""

    app_name: str = os.getenv("APP_NAME", "Investment Dashboard")
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./investdash.db")
    sqlite_busy_timeout_ms: int = int(os.getenv("SQLITE_BUSY_TIMEOUT_MS", "30000"))
    sqlite_journal_mode: str = os.getenv("SQLITE_JOURNAL_MODE", "WAL")
    price_refresh_seconds: int = int(os.getenv("PRICE_REFRESH_SECONDS", "30"))
    history_days: int = int(os.getenv("HISTORY_DAYS", "1095"))
    drift_threshold_pct: float = float(os.getenv("DRIFT_THRESHOLD_PCT", "0.5"))
    trading_days_per_year: int = int(os.getenv("TRADING_DAYS_PER_YEAR", "252"))
    annualization_min_days: int = int(os.getenv("ANNUALIZATION_MIN_DAYS", "0"))
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_json: bool = os.getenv("LOG_JSON", "false").lower() == "true"


settings = Settings()
