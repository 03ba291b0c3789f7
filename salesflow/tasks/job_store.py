"""Redis bookkeeping for inbound jobs: idempotent reservation, states and locks."""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from typing import Any

from celery.utils.time import rate
from redis import Redis
from redis.lock import Lock

from salesflow.core.config import Config
from salesflow.core.enums import JobState

logger = logging.getLogger(__name__)

_OPEN_STATES = (JobState.WAITING, JobState.ACTIVE, JobState.DELAYED)


class JobStore:
    """Tracks each job id once; completed and failed sets are bounded."""

    def __init__(
        self,
        redis: Redis,
        config: Config,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.redis = redis
        self.prefix = f"salesflow:{config.QUEUE_NAME}"
        self.completed_count = config.QUEUE_COMPLETED_RETENTION_COUNT
        self.completed_seconds = config.QUEUE_COMPLETED_RETENTION_SECONDS
        self.failed_count = config.QUEUE_FAILED_RETENTION_COUNT
        self.failed_seconds = config.QUEUE_FAILED_RETENTION_SECONDS
        self.lock_timeout = config.LEAD_LOCK_TIMEOUT_SECONDS
        self.lock_wait = config.LEAD_LOCK_WAIT_SECONDS
        self.rate_per_second = rate(config.QUEUE_RATE_LIMIT) if config.QUEUE_RATE_LIMIT else 0.0
        self._clock = clock

    def _job_key(self, job_id: str) -> str:
        return f"{self.prefix}:job:{job_id}"

    def _state_key(self, state: JobState) -> str:
        return f"{self.prefix}:{state.value}"

    def reserve(self, job_id: str, payload: dict[str, Any]) -> bool:
        """Claim ``job_id``; False when the id was already enqueued."""
        key = self._job_key(job_id)
        if not self.redis.hsetnx(key, "state", JobState.WAITING.value):
            return False
        now = self._clock()
        pipe = self.redis.pipeline()
        pipe.hset(
            key,
            mapping={
                "payload": json.dumps(payload, ensure_ascii=False),
                "attempts": 0,
                "created_at": now,
                "updated_at": now,
            },
        )
        pipe.sadd(self._state_key(JobState.WAITING), job_id)
        pipe.execute()
        return True

    def release(self, job_id: str) -> None:
        """Forget a reservation whose dispatch never happened."""
        pipe = self.redis.pipeline()
        pipe.delete(self._job_key(job_id))
        for state in _OPEN_STATES:
            pipe.srem(self._state_key(state), job_id)
        pipe.execute()

    def get(self, job_id: str) -> dict[str, Any] | None:
        raw = self.redis.hgetall(self._job_key(job_id))
        if not raw:
            return None
        job = {_text(k): _text(v) for k, v in raw.items()}
        if "payload" in job:
            job["payload"] = json.loads(job["payload"])
        job["id"] = job_id
        job["attempts"] = int(job.get("attempts") or 0)
        return job

    def mark(self, job_id: str, state: JobState, attempts: int | None = None, error: str | None = None) -> None:
        now = self._clock()
        key = self._job_key(job_id)
        fields: dict[str, Any] = {"state": state.value, "updated_at": now}
        if attempts is not None:
            fields["attempts"] = attempts
        if error is not None:
            fields["error"] = error[:2000]

        pipe = self.redis.pipeline()
        pipe.hset(key, mapping=fields)
        for open_state in _OPEN_STATES:
            pipe.srem(self._state_key(open_state), job_id)

        if state in _OPEN_STATES:
            pipe.sadd(self._state_key(state), job_id)
        else:
            count, seconds = self._retention(state)
            finished_key = self._state_key(state)
            pipe.zadd(finished_key, {job_id: now})
            pipe.zremrangebyscore(finished_key, "-inf", now - seconds)
            pipe.zremrangebyrank(finished_key, 0, -(count + 1))
            pipe.expire(key, seconds)
        pipe.execute()

    def _retention(self, state: JobState) -> tuple[int, int]:
        if state is JobState.COMPLETED:
            return self.completed_count, self.completed_seconds
        return self.failed_count, self.failed_seconds

    def stats(self) -> dict[str, int]:
        now = self._clock()
        counts = {state.value: int(self.redis.scard(self._state_key(state))) for state in _OPEN_STATES}
        for state in (JobState.COMPLETED, JobState.FAILED):
            _, seconds = self._retention(state)
            counts[state.value] = int(self.redis.zcount(self._state_key(state), now - seconds, "+inf"))
        counts["total"] = sum(counts.values())
        return counts

    def failed_jobs(self, limit: int = 50) -> list[dict[str, Any]]:
        """Most recently parked jobs first."""
        job_ids = self.redis.zrevrange(self._state_key(JobState.FAILED), 0, max(limit, 1) - 1)
        jobs = []
        for job_id in job_ids:
            job = self.get(_text(job_id))
            if job is not None:
                jobs.append(job)
        return jobs

    def acquire_rate_slot(self) -> float:
        """Take a slot under the queue-wide rate cap shared by every worker.

        Returns 0 when the job may start, otherwise the seconds left in the
        current window. Caps below one per second use a longer window of one slot.
        """
        if self.rate_per_second <= 0:
            return 0.0
        if self.rate_per_second >= 1:
            limit, window = int(self.rate_per_second), 1.0
        else:
            limit, window = 1, 1.0 / self.rate_per_second

        now = self._clock()
        bucket = int(now // window)
        key = f"{self.prefix}:rate:{bucket}"
        pipe = self.redis.pipeline()
        pipe.incr(key)
        pipe.expire(key, int(window) + 1)
        count, _ = pipe.execute()
        if count <= limit:
            return 0.0
        return (bucket + 1) * window - now

    def lead_lock(self, phone: str) -> Lock:
        return self.redis.lock(
            f"{self.prefix}:lock:lead:{phone}",
            timeout=self.lock_timeout,
            blocking_timeout=self.lock_wait,
        )

    def ping(self) -> bool:
        try:
            return bool(self.redis.ping())
        except Exception as exc:
            logger.warning("redis.ping.failed", extra={"event": "redis.ping.failed", "error": str(exc)})
            return False


def _text(value: Any) -> Any:
    return value.decode("utf-8") if isinstance(value, bytes) else value
