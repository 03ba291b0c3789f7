"""Celery task that runs the inbound WhatsApp message pipeline."""

from __future__ import annotations

import logging
from typing import Any

from celery.signals import worker_process_init
from celery.utils.time import get_exponential_backoff_interval
from pydantic import ValidationError

from salesflow.core.container import bind_container, build_container, get_container
from salesflow.core.enums import JobState
from salesflow.core.exceptions import LeadBusyError
from salesflow.core.logging_config import configure_logging
from salesflow.core.schemas import InboundMessageJob
from salesflow.tasks.celery_app import celery_app
from salesflow.tasks.hooks import after_task, before_task

logger = logging.getLogger(__name__)


@worker_process_init.connect
def _init_worker_process(**_: Any) -> None:
    configure_logging()
    bind_container(build_container())


@celery_app.task(
    bind=True,
    name="whatsapp.process_inbound_message",
    max_retries=None,
)
def process_inbound_message(self, job: dict[str, Any], busy_retries: int = 0) -> dict[str, Any]:
    """Run the pipeline for one inbound job.

    Handler failures get ``QUEUE_MAX_ATTEMPTS`` attempts with exponential
    backoff. Waiting on another worker's lead lock is counted apart, up to
    ``LEAD_BUSY_MAX_RETRIES`` requeues.
    """
    job_id = self.request.id or job.get("message_id") or job.get("messageId")
    failures = self.request.retries - busy_retries
    attempt = failures + 1
    container = get_container()
    job_store = container.job_store()
    max_attempts = container.config.QUEUE_MAX_ATTEMPTS

    logger.info("task.start", extra=before_task(job_id, job, attempt))
    job_store.mark(job_id, JobState.ACTIVE, attempts=attempt)
    try:
        inbound = InboundMessageJob.model_validate(job)
    except ValidationError as exc:
        job_store.mark(job_id, JobState.FAILED, attempts=attempt, error=f"invalid job payload: {exc}")
        logger.error(
            "task.rejected",
            extra=after_task(job_id, job, attempt, "rejected", event="task.rejected", error=str(exc)),
        )
        raise

    wait = job_store.acquire_rate_slot()
    while wait > 0:
        container.sleep(wait)
        wait = job_store.acquire_rate_slot()

    try:
        result = container.build_pipeline().process(inbound)
    except LeadBusyError as exc:
        if busy_retries >= container.config.LEAD_BUSY_MAX_RETRIES:
            _park(job_store, job_id, job, attempt, exc)
            raise
        job_store.mark(job_id, JobState.DELAYED)
        logger.info(
            "task.lead_busy",
            extra=after_task(job_id, job, attempt, "requeued", event="task.lead_busy", busy_retries=busy_retries + 1),
        )
        raise self.retry(
            exc=exc,
            countdown=container.config.QUEUE_BACKOFF_SECONDS,
            kwargs=dict(self.request.kwargs or {}, busy_retries=busy_retries + 1),
        )
    except Exception as exc:
        if attempt >= max_attempts:
            _park(job_store, job_id, job, attempt, exc)
            raise
        job_store.mark(job_id, JobState.DELAYED, attempts=attempt, error=f"{exc.__class__.__name__}: {exc}")
        logger.error(
            "task.retrying",
            extra=after_task(job_id, job, attempt, "retrying", event="task.retrying", error=str(exc)),
        )
        raise self.retry(
            exc=exc,
            countdown=get_exponential_backoff_interval(
                container.config.QUEUE_BACKOFF_SECONDS,
                failures,
                container.config.QUEUE_BACKOFF_MAX_SECONDS,
                full_jitter=False,
            ),
        )

    job_store.mark(job_id, JobState.COMPLETED, attempts=attempt)
    logger.info("task.finish", extra=after_task(job_id, job, attempt, result.status, lead_id=result.lead_id))
    return {
        "job_id": job_id,
        "status": result.status,
        "lead_id": result.lead_id,
        "intent": result.intent,
        "agent": result.agent,
        "delivered": result.delivered,
    }


def _park(job_store, job_id: str, job: dict[str, Any], attempt: int, exc: Exception) -> None:
    job_store.mark(job_id, JobState.FAILED, attempts=attempt, error=f"{exc.__class__.__name__}: {exc}")
    logger.error(
        "task.failed",
        extra=after_task(job_id, job, attempt, "failed", event="task.failed", error=str(exc)),
    )
