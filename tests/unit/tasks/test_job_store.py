from __future__ import annotations

import dataclasses

import pytest

from salesflow.core.enums import JobState
from salesflow.tasks.job_store import JobStore


def test_reserve_is_idempotent_per_job_id(job_store):
    assert job_store.reserve("abc-1", {"phone": "5511999990001"}) is True
    assert job_store.reserve("abc-1", {"phone": "5511999990001"}) is False

    job = job_store.get("abc-1")
    assert job["state"] == JobState.WAITING.value
    assert job["payload"] == {"phone": "5511999990001"}
    assert job["attempts"] == 0
    assert job_store.stats()["waiting"] == 1


def test_state_transitions_move_job_between_sets(job_store):
    job_store.reserve("abc-1", {})
    job_store.mark("abc-1", JobState.ACTIVE, attempts=1)
    assert job_store.stats()["active"] == 1
    assert job_store.stats()["waiting"] == 0

    job_store.mark("abc-1", JobState.DELAYED, attempts=1, error="CompletionError: down")
    job_store.mark("abc-1", JobState.COMPLETED, attempts=2)

    stats = job_store.stats()
    assert stats == {"waiting": 0, "active": 0, "delayed": 0, "completed": 1, "failed": 0, "total": 1}
    job = job_store.get("abc-1")
    assert job["attempts"] == 2
    assert job["error"] == "CompletionError: down"


def test_failed_jobs_are_listed_newest_first(fake_redis, config):
    now = [1000.0]
    store = JobStore(fake_redis, config, clock=lambda: now[0])
    for job_id in ("a", "b"):
        store.reserve(job_id, {"message_id": job_id})
        now[0] += 1
        store.mark(job_id, JobState.FAILED, attempts=3, error="boom")

    assert [job["id"] for job in store.failed_jobs()] == ["b", "a"]
    assert store.failed_jobs()[0]["payload"] == {"message_id": "b"}


def test_completed_retention_is_bounded_by_count(fake_redis, config):
    store = JobStore(
        fake_redis,
        dataclasses.replace(config, QUEUE_COMPLETED_RETENTION_COUNT=2),
        clock=lambda: 1000.0,
    )
    for job_id in ("a", "b", "c"):
        store.reserve(job_id, {})
        store.mark(job_id, JobState.COMPLETED, attempts=1)

    assert store.stats()["completed"] == 2


def test_completed_jobs_age_out_of_stats(fake_redis, config):
    now = [1000.0]
    store = JobStore(
        fake_redis,
        dataclasses.replace(config, QUEUE_COMPLETED_RETENTION_SECONDS=60),
        clock=lambda: now[0],
    )
    store.reserve("old", {})
    store.mark("old", JobState.COMPLETED)

    now[0] += 61
    assert store.stats()["completed"] == 0


def test_rate_cap_is_shared_between_workers(fake_redis, config):
    now = [1000.25]
    capped = dataclasses.replace(config, QUEUE_RATE_LIMIT="2/s")
    first_worker = JobStore(fake_redis, capped, clock=lambda: now[0])
    second_worker = JobStore(fake_redis, capped, clock=lambda: now[0])

    assert first_worker.acquire_rate_slot() == 0
    assert second_worker.acquire_rate_slot() == 0
    assert first_worker.acquire_rate_slot() == pytest.approx(0.75)

    now[0] = 1001.0
    assert second_worker.acquire_rate_slot() == 0


def test_slow_rate_cap_uses_a_longer_window(fake_redis, config):
    now = [600.0]
    store = JobStore(fake_redis, dataclasses.replace(config, QUEUE_RATE_LIMIT="2/m"), clock=lambda: now[0])

    assert store.acquire_rate_slot() == 0
    now[0] += 10
    assert store.acquire_rate_slot() == pytest.approx(20)
    now[0] += 20
    assert store.acquire_rate_slot() == 0


def test_empty_rate_limit_never_waits(fake_redis, config):
    store = JobStore(fake_redis, dataclasses.replace(config, QUEUE_RATE_LIMIT=""), clock=lambda: 1000.0)

    assert all(store.acquire_rate_slot() == 0 for _ in range(50))


def test_lead_lock_is_exclusive_per_phone(job_store):
    first = job_store.lead_lock("5511999990001")
    assert first.acquire() is True
    try:
        assert job_store.lead_lock("5511999990001").acquire() is False
        other = job_store.lead_lock("5511999990002")
        assert other.acquire() is True
        other.release()
    finally:
        first.release()


def test_ping(job_store):
    assert job_store.ping() is True
