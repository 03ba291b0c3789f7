"""Lifecycle hooks for queue task execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from salesflow.core.logging import LogContext, build_log_event


def _context(job_id: str, job: dict[str, Any], attempt: int) -> LogContext:
    return LogContext(
        job_id=job_id,
        phone=job.get("phone"),
        agent_name="whatsapp.inbound",
        attempt=attempt,
    )


def before_task(job_id: str, job: dict[str, Any], attempt: int) -> dict[str, Any]:
    """Build pre-task log payload."""
    return build_log_event(event="task.start", context=_context(job_id, job, attempt))


def after_task(
    job_id: str,
    job: dict[str, Any],
    attempt: int,
    status: str,
    event: str = "task.finish",
    **fields: Any,
) -> dict[str, Any]:
    """Build post-task log payload."""
    return build_log_event(
        event=event,
        context=_context(job_id, job, attempt),
        status=status,
        finished_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )
