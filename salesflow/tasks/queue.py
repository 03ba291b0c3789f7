"""Producer side of the inbound message queue."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from salesflow.core.enums import JobState
from salesflow.core.schemas import InboundMessageJob
from salesflow.tasks.job_store import JobStore

logger = logging.getLogger(__name__)

Dispatch = Callable[..., Any]


@dataclass(frozen=True)
class EnqueueResult:
    job_id: str
    created: bool
    state: str


class InboundQueue:
    def __init__(self, job_store: JobStore, dispatch: Dispatch, queue_name: str) -> None:
        self.job_store = job_store
        self.dispatch = dispatch
        self.queue_name = queue_name

    def enqueue(self, job: InboundMessageJob) -> EnqueueResult:
        """Schedule ``job`` once per message id; repeats return the existing job."""
        job_id = job.message_id
        payload = job.to_payload()
        if not self.job_store.reserve(job_id, payload):
            existing = self.job_store.get(job_id) or {}
            logger.info(
                "queue.job.duplicate",
                extra={"event": "queue.job.duplicate", "job_id": job_id, "state": existing.get("state")},
            )
            return EnqueueResult(job_id=job_id, created=False, state=existing.get("state", JobState.WAITING.value))

        try:
            self.dispatch(kwargs={"job": payload}, task_id=job_id, queue=self.queue_name)
        except Exception:
            self.job_store.release(job_id)
            raise

        logger.info(
            "queue.job.enqueued",
            extra={"event": "queue.job.enqueued", "job_id": job_id, "phone": job.phone},
        )
        # Eager workers may already have moved the job on.
        current = self.job_store.get(job_id) or {}
        return EnqueueResult(job_id=job_id, created=True, state=current.get("state", JobState.WAITING.value))
