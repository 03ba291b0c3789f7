"""Configuration module for the salesflow application."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from salesflow.core.exceptions import ConfigurationError

load_dotenv()

DEFAULT_OFF_HOURS_REPLIES = (
    "Graça e Paz, Pastor! Estamos em momento de descanso (atendemos seg-sex, 8h-18h). "
    "Sua mensagem foi registrada e responderemos logo cedo. Deus abençoe!",
    "Paz do Senhor! Nosso time está descansando agora (seg-sex, 8h-18h), mas sua mensagem "
    "está guardada. Amanhã cedo retornamos. Fique com Deus!",
    "Olá, Pastor! Estamos fora do horário (seg-sex, 8h-18h). Registramos sua mensagem e "
    "responderemos assim que possível. Deus abençoe!",
)


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_int_tuple(value: str | None, default: tuple[int, ...]) -> tuple[int, ...]:
    if not value:
        return default
    try:
        return tuple(int(part) for part in value.split(",") if part.strip())
    except ValueError as exc:
        raise ConfigurationError(f"Expected comma separated integers, got {value!r}.") from exc


def _as_text_tuple(value: str | None, default: tuple[str, ...]) -> tuple[str, ...]:
    if not value:
        return default
    items = tuple(part.strip() for part in value.split("|") if part.strip())
    return items or default


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    REDIS_URL: str
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    CELERY_TASK_ALWAYS_EAGER: bool
    COMPLETION_API_URL: str
    COMPLETION_API_KEY: str | None
    COMPLETION_MODEL: str
    COMPLETION_TIMEOUT_SECONDS: int
    COMPLETION_MAX_RETRIES: int
    COMPLETION_MIN_INTERVAL_SECONDS: float
    MESSAGING_API_URL: str
    MESSAGING_API_KEY: str | None
    MESSAGING_INSTANCE: str
    WEBHOOK_SECRET: str | None
    QUEUE_NAME: str
    QUEUE_CONCURRENCY: int
    QUEUE_RATE_LIMIT: str
    QUEUE_MAX_ATTEMPTS: int
    QUEUE_BACKOFF_SECONDS: int
    QUEUE_BACKOFF_MAX_SECONDS: int
    QUEUE_VISIBILITY_TIMEOUT_SECONDS: int
    QUEUE_COMPLETED_RETENTION_COUNT: int
    QUEUE_COMPLETED_RETENTION_SECONDS: int
    QUEUE_FAILED_RETENTION_COUNT: int
    QUEUE_FAILED_RETENTION_SECONDS: int
    LEAD_LOCK_TIMEOUT_SECONDS: int
    LEAD_LOCK_WAIT_SECONDS: float
    LEAD_BUSY_MAX_RETRIES: int
    BUSINESS_DAYS: tuple[int, ...]
    BUSINESS_HOUR_START: int
    BUSINESS_HOUR_END: int
    BUSINESS_UTC_OFFSET_HOURS: int
    OFF_HOURS_REPLIES: tuple[str, ...]
    MEMORY_RECENT_LIMIT: int
    SUMMARY_THRESHOLD: int
    SUMMARY_DRIFT_THRESHOLD: int
    SUMMARY_SOURCE_LIMIT: int
    MARKET_ANALYSIS_TTL_HOURS: int
    TYPING_MS_PER_CHAR: int
    TYPING_MAX_SECONDS: float
    HUMANIZED_DELAY_MIN_SECONDS: float
    HUMANIZED_DELAY_MAX_SECONDS: float
    API_HOST: str
    API_PORT: int
    LOG_LEVEL: str
    LOG_FILE: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    config = Config(
        APP_NAME="salesflow",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./salesflow.db"),
        REDIS_URL=redis_url,
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        CELERY_TASK_ALWAYS_EAGER=_as_bool(os.getenv("CELERY_TASK_ALWAYS_EAGER"), default=False),
        COMPLETION_API_URL=os.getenv("COMPLETION_API_URL", "https://api.moonshot.cn/v1").rstrip("/"),
        COMPLETION_API_KEY=os.getenv("COMPLETION_API_KEY"),
        COMPLETION_MODEL=os.getenv("COMPLETION_MODEL", "kimi-k2-5"),
        COMPLETION_TIMEOUT_SECONDS=int(os.getenv("COMPLETION_TIMEOUT_SECONDS", "60")),
        COMPLETION_MAX_RETRIES=int(os.getenv("COMPLETION_MAX_RETRIES", "1")),
        COMPLETION_MIN_INTERVAL_SECONDS=float(os.getenv("COMPLETION_MIN_INTERVAL_SECONDS", "0.1")),
        MESSAGING_API_URL=os.getenv("MESSAGING_API_URL", "http://localhost:8080").rstrip("/"),
        MESSAGING_API_KEY=os.getenv("MESSAGING_API_KEY"),
        MESSAGING_INSTANCE=os.getenv("MESSAGING_INSTANCE", "salesflow"),
        WEBHOOK_SECRET=os.getenv("WEBHOOK_SECRET") or None,
        QUEUE_NAME=os.getenv("QUEUE_NAME", "whatsapp-incoming"),
        QUEUE_CONCURRENCY=int(os.getenv("QUEUE_CONCURRENCY", "5")),
        QUEUE_RATE_LIMIT=os.getenv("QUEUE_RATE_LIMIT", "10/s"),
        QUEUE_MAX_ATTEMPTS=int(os.getenv("QUEUE_MAX_ATTEMPTS", "3")),
        QUEUE_BACKOFF_SECONDS=int(os.getenv("QUEUE_BACKOFF_SECONDS", "1")),
        QUEUE_BACKOFF_MAX_SECONDS=int(os.getenv("QUEUE_BACKOFF_MAX_SECONDS", "60")),
        QUEUE_VISIBILITY_TIMEOUT_SECONDS=int(os.getenv("QUEUE_VISIBILITY_TIMEOUT_SECONDS", "300")),
        QUEUE_COMPLETED_RETENTION_COUNT=int(os.getenv("QUEUE_COMPLETED_RETENTION_COUNT", "1000")),
        QUEUE_COMPLETED_RETENTION_SECONDS=int(os.getenv("QUEUE_COMPLETED_RETENTION_SECONDS", str(24 * 3600))),
        QUEUE_FAILED_RETENTION_COUNT=int(os.getenv("QUEUE_FAILED_RETENTION_COUNT", "5000")),
        QUEUE_FAILED_RETENTION_SECONDS=int(os.getenv("QUEUE_FAILED_RETENTION_SECONDS", str(7 * 24 * 3600))),
        LEAD_LOCK_TIMEOUT_SECONDS=int(os.getenv("LEAD_LOCK_TIMEOUT_SECONDS", "120")),
        LEAD_LOCK_WAIT_SECONDS=float(os.getenv("LEAD_LOCK_WAIT_SECONDS", "10")),
        LEAD_BUSY_MAX_RETRIES=int(os.getenv("LEAD_BUSY_MAX_RETRIES", "30")),
        BUSINESS_DAYS=_as_int_tuple(os.getenv("BUSINESS_DAYS"), default=(0, 1, 2, 3, 4)),
        BUSINESS_HOUR_START=int(os.getenv("BUSINESS_HOUR_START", "8")),
        BUSINESS_HOUR_END=int(os.getenv("BUSINESS_HOUR_END", "18")),
        BUSINESS_UTC_OFFSET_HOURS=int(os.getenv("BUSINESS_UTC_OFFSET_HOURS", "-3")),
        OFF_HOURS_REPLIES=_as_text_tuple(os.getenv("OFF_HOURS_REPLIES"), default=DEFAULT_OFF_HOURS_REPLIES),
        MEMORY_RECENT_LIMIT=int(os.getenv("MEMORY_RECENT_LIMIT", "10")),
        SUMMARY_THRESHOLD=int(os.getenv("SUMMARY_THRESHOLD", "20")),
        SUMMARY_DRIFT_THRESHOLD=int(os.getenv("SUMMARY_DRIFT_THRESHOLD", "10")),
        SUMMARY_SOURCE_LIMIT=int(os.getenv("SUMMARY_SOURCE_LIMIT", "100")),
        MARKET_ANALYSIS_TTL_HOURS=int(os.getenv("MARKET_ANALYSIS_TTL_HOURS", "24")),
        TYPING_MS_PER_CHAR=int(os.getenv("TYPING_MS_PER_CHAR", "50")),
        TYPING_MAX_SECONDS=float(os.getenv("TYPING_MAX_SECONDS", "5")),
        HUMANIZED_DELAY_MIN_SECONDS=float(os.getenv("HUMANIZED_DELAY_MIN_SECONDS", "1")),
        HUMANIZED_DELAY_MAX_SECONDS=float(os.getenv("HUMANIZED_DELAY_MAX_SECONDS", "3")),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=int(os.getenv("API_PORT", "8000")),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", ""),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if not config.REDIS_URL.startswith(("redis://", "rediss://", "unix://")):
        raise ConfigurationError("REDIS_URL must use redis://, rediss:// or unix:// scheme.")
    if config.COMPLETION_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("COMPLETION_TIMEOUT_SECONDS must be >= 1.")
    if config.COMPLETION_MAX_RETRIES < 0:
        raise ConfigurationError("COMPLETION_MAX_RETRIES must be >= 0.")
    if config.COMPLETION_MIN_INTERVAL_SECONDS < 0:
        raise ConfigurationError("COMPLETION_MIN_INTERVAL_SECONDS must be >= 0.")
    if config.QUEUE_CONCURRENCY < 1:
        raise ConfigurationError("QUEUE_CONCURRENCY must be >= 1.")
    if config.QUEUE_MAX_ATTEMPTS < 1:
        raise ConfigurationError("QUEUE_MAX_ATTEMPTS must be >= 1.")
    if config.LEAD_BUSY_MAX_RETRIES < 0:
        raise ConfigurationError("LEAD_BUSY_MAX_RETRIES must be >= 0.")
    if not config.BUSINESS_DAYS or any(day < 0 or day > 6 for day in config.BUSINESS_DAYS):
        raise ConfigurationError("BUSINESS_DAYS must list weekdays between 0 (Monday) and 6 (Sunday).")
    if not 0 <= config.BUSINESS_HOUR_START < config.BUSINESS_HOUR_END <= 24:
        raise ConfigurationError("BUSINESS_HOUR_START must be before BUSINESS_HOUR_END within 0-24.")
    if not -12 <= config.BUSINESS_UTC_OFFSET_HOURS <= 14:
        raise ConfigurationError("BUSINESS_UTC_OFFSET_HOURS must be between -12 and 14.")
    if config.HUMANIZED_DELAY_MIN_SECONDS < 0 or config.HUMANIZED_DELAY_MAX_SECONDS < config.HUMANIZED_DELAY_MIN_SECONDS:
        raise ConfigurationError("HUMANIZED_DELAY_* must satisfy 0 <= min <= max.")
    if config.MEMORY_RECENT_LIMIT < 1 or config.SUMMARY_SOURCE_LIMIT < config.MEMORY_RECENT_LIMIT:
        raise ConfigurationError("SUMMARY_SOURCE_LIMIT must be >= MEMORY_RECENT_LIMIT >= 1.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and not config.COMPLETION_API_KEY:
        raise ConfigurationError("COMPLETION_API_KEY is required in production.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
