"""Celery application bootstrap."""

from __future__ import annotations

from celery import Celery

from salesflow.core.config import get_config

config = get_config()

celery_app = Celery(
    "salesflow",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["salesflow.tasks.message_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_default_queue=config.QUEUE_NAME,
    # A job is only acknowledged once the pipeline finished; a dead worker's
    # job is redelivered after the visibility timeout.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=config.QUEUE_CONCURRENCY,
    broker_transport_options={"visibility_timeout": config.QUEUE_VISIBILITY_TIMEOUT_SECONDS},
    result_expires=config.QUEUE_COMPLETED_RETENTION_SECONDS,
    task_always_eager=config.CELERY_TASK_ALWAYS_EAGER,
)
