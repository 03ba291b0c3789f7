from __future__ import annotations

import dataclasses

from salesflow.core.enums import JobState
from salesflow.tasks.message_tasks import process_inbound_message


def _payload(message_id="abc-1", **overrides):
    payload = {
        "phone": "5511999990001",
        "message": "Quero saber o preço",
        "push_name": "João",
        "message_id": message_id,
        "timestamp": 1760000000,
    }
    payload.update(overrides)
    return payload


def test_task_processes_job_and_marks_completed(container, completion, messaging):
    completion.intent = "pricing"
    job_store = container.job_store()
    job_store.reserve("abc-1", _payload())

    outcome = process_inbound_message.apply(kwargs={"job": _payload()}, task_id="abc-1")

    assert outcome.successful()
    assert outcome.result["status"] == "processed"
    assert outcome.result["intent"] == "pricing"
    job = job_store.get("abc-1")
    assert job["state"] == JobState.COMPLETED.value
    assert job["attempts"] == 1
    assert len(messaging.sent) == 1


def test_camel_case_payload_is_accepted(container):
    payload = _payload()
    payload["pushName"] = payload.pop("push_name")
    payload["messageId"] = payload.pop("message_id")

    outcome = process_inbound_message.apply(kwargs={"job": payload}, task_id="abc-1")

    assert outcome.successful()


def test_failing_pipeline_is_retried_then_parked(container, completion, messaging):
    completion.fail_on = {"reply"}

    outcome = process_inbound_message.apply(kwargs={"job": _payload()}, task_id="abc-1")

    assert outcome.failed()
    job = container.job_store().get("abc-1")
    assert job["state"] == JobState.FAILED.value
    assert job["attempts"] == container.config.QUEUE_MAX_ATTEMPTS
    assert job["error"].startswith("CompletionError")
    assert [job["id"] for job in container.job_store().failed_jobs()] == ["abc-1"]
    # Each attempt delivers the fallback reply.
    assert len(messaging.sent) == container.config.QUEUE_MAX_ATTEMPTS


def test_invalid_payload_is_rejected_without_retry(container, completion):
    outcome = process_inbound_message.apply(kwargs={"job": _payload(phone="abc")}, task_id="bad-1")

    assert outcome.failed()
    job = container.job_store().get("bad-1")
    assert job["state"] == JobState.FAILED.value
    assert job["attempts"] == 1
    assert completion.calls == []


class _ContendedPipeline:
    """Keeps the lead lock held by another owner for the first ``contended`` runs."""

    def __init__(self, container, contended):
        self.pipeline = container.build_pipeline()
        self.held = container.job_store().lead_lock("5511999990001")
        assert self.held.acquire() is True
        self.contended = contended
        self.runs = 0

    def process(self, job):
        self.runs += 1
        if self.runs > self.contended and self.held.owned():
            self.held.release()
        return self.pipeline.process(job)


def test_lead_contention_does_not_use_up_attempts(container, completion, messaging, monkeypatch):
    completion.intent = "pricing"
    contended = _ContendedPipeline(container, contended=container.config.QUEUE_MAX_ATTEMPTS + 2)
    monkeypatch.setattr(container, "build_pipeline", lambda: contended)

    outcome = process_inbound_message.apply(kwargs={"job": _payload()}, task_id="abc-1")

    assert outcome.successful()
    assert outcome.result["status"] == "processed"
    assert contended.runs == container.config.QUEUE_MAX_ATTEMPTS + 3
    job = container.job_store().get("abc-1")
    assert job["state"] == JobState.COMPLETED.value
    assert job["attempts"] == 1
    assert len(messaging.sent) == 1


def test_handler_failures_keep_their_budget_after_contention(container, completion, messaging, monkeypatch):
    completion.fail_on = {"reply"}
    contended = _ContendedPipeline(container, contended=2)
    monkeypatch.setattr(container, "build_pipeline", lambda: contended)

    outcome = process_inbound_message.apply(kwargs={"job": _payload()}, task_id="abc-1")

    assert outcome.failed()
    job = container.job_store().get("abc-1")
    assert job["state"] == JobState.FAILED.value
    assert job["attempts"] == container.config.QUEUE_MAX_ATTEMPTS
    assert job["error"].startswith("CompletionError")
    assert len(messaging.sent) == container.config.QUEUE_MAX_ATTEMPTS


def test_lead_held_past_the_busy_limit_is_parked(container, messaging, monkeypatch):
    container.config = dataclasses.replace(container.config, LEAD_BUSY_MAX_RETRIES=2)
    contended = _ContendedPipeline(container, contended=100)
    monkeypatch.setattr(container, "build_pipeline", lambda: contended)

    try:
        outcome = process_inbound_message.apply(kwargs={"job": _payload()}, task_id="abc-1")
    finally:
        contended.held.release()

    assert outcome.failed()
    assert contended.runs == 3
    job = container.job_store().get("abc-1")
    assert job["state"] == JobState.FAILED.value
    assert job["error"].startswith("LeadBusyError")
    assert messaging.sent == []
