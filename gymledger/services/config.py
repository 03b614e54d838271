"""Configuration loading for the ledger services and scheduled jobs.

Loads settings from .env file and environment variables with sensible defaults.
Validates numeric settings and provides clear error messages.
"""

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


@dataclass
class Settings:
    """Runtime configuration."""

    database_url: str = "sqlite:///./gymledger.db"
    """SQLAlchemy database URL (default: local SQLite)"""

    gym_timezone: str = "America/Argentina/Buenos_Aires"
    """Civil timezone used for every "today" comparison"""

    locale: str = "es_AR"
    """Babel locale for currency and date formatting"""

    batch_size: int = 500
    """Ceiling on operations per batch flush in bulk jobs"""

    default_renewal_days: int = 30
    """Renewal period when the expiring record's duration is unknown"""

    max_transaction_retries: int = 3
    """Attempts before a store conflict is surfaced to the caller"""

    log_file: str = "logs/gymledger.log"
    """Path to log file"""

    log_level: str = "INFO"
    """Root log level name"""


def _int_setting(name: str, default: int, minimum: int = 1) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from e
    if value < minimum:
        raise ValueError(f"{name} must be >= {minimum}, got {value}")
    return value


def load_settings(env_file: str | None = ".env") -> Settings:
    """
    Load configuration from .env file and environment variables.

    Priority (highest to lowest):
    1. Environment variables (DATABASE_URL, GYM_TIMEZONE, BATCH_SIZE, etc.)
    2. .env file in project root
    3. Default values

    Returns:
        Settings with all values resolved

    Raises:
        ValueError: If a numeric setting is not a positive integer
    """
    if env_file:
        env_path = Path(env_file)
        if env_path.exists():
            load_dotenv(env_path)

    defaults = Settings()
    return Settings(
        database_url=os.getenv("DATABASE_URL", defaults.database_url),
        gym_timezone=os.getenv("GYM_TIMEZONE", defaults.gym_timezone),
        locale=os.getenv("LOCALE", defaults.locale),
        batch_size=_int_setting("BATCH_SIZE", defaults.batch_size),
        default_renewal_days=_int_setting("DEFAULT_RENEWAL_DAYS", defaults.default_renewal_days),
        max_transaction_retries=_int_setting(
            "MAX_TRANSACTION_RETRIES", defaults.max_transaction_retries
        ),
        log_file=os.getenv("LOG_FILE", defaults.log_file),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


__all__ = ["Settings", "load_settings"]
