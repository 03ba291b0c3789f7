"""Structured logging helpers for queue and pipeline events."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    job_id: str | None = None
    phone: str | None = None
    lead_id: int | None = None
    agent_name: str | None = None
    attempt: int | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "event": event,
        "event_at": datetime.now(timezone.utc).isoformat(),
        "job_id": context.job_id,
        "phone": context.phone,
        "lead_id": context.lead_id,
        "agent_name": context.agent_name,
        "attempt": context.attempt,
    }
    payload.update(fields)
    return payload
