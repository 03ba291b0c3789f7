"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from salesflow.core.container import ServiceContainer
from salesflow.core.logging_config import configure_logging
from salesflow.database.db import verify_database_connection
from salesflow.database.init_db import init_db

logger = logging.getLogger(__name__)


def validate_startup_config(container: ServiceContainer) -> None:
    """Fail-fast connectivity checks; only production refuses to start."""
    config = container.config
    database_ok = verify_database_connection(container.database_engine())
    redis_ok = container.job_store().ping()

    if config.is_production and not (database_ok and redis_ok):
        raise RuntimeError(f"Startup connectivity check failed (database={database_ok}, redis={redis_ok}).")
    if not database_ok or not redis_ok:
        logger.warning(
            "startup.connectivity.degraded",
            extra={"event": "startup.connectivity.degraded", "database": database_ok, "redis": redis_ok},
        )

    if config.is_production and config.DATABASE_URL.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )
    if not config.WEBHOOK_SECRET:
        logger.warning(
            "startup.webhook.secret_missing",
            extra={"event": "startup.webhook.secret_missing"},
        )

    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": config.DATABASE_URL.split("://", 1)[0],
            "queue": config.QUEUE_NAME,
            "concurrency": config.QUEUE_CONCURRENCY,
        },
    )


def bootstrap(container: ServiceContainer) -> None:
    """Initialize logging, validate connectivity and create missing tables."""
    configure_logging(container.config)
    validate_startup_config(container)
    init_db(container.database_engine())
