"""
Job dispatcher: one delayed publish job per root post, replaced on every write.

Two backends share the same interface:
- CeleryJobDispatcher: Celery countdown tasks; a Redis hash maps post id -> current
  task id so a replaced task can be recognised (and revoked) when it fires.
- InMemoryJobDispatcher: a dict keyed by post id drained by `run_due(now)`; used for
  local runs and tests.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Any, Callable, Optional

import redis

from app.config import get_settings

logger = logging.getLogger(__name__)


def backoff_delay(attempt: int, base_seconds: int) -> timedelta:
    """Delay before retry number `attempt` (1-based): base, 2*base, 4*base, ..."""
    return timedelta(seconds=base_seconds * (2 ** max(attempt - 1, 0)))


class JobDispatcher(ABC):
    @abstractmethod
    def schedule(self, post_id: uuid.UUID, fire_at: datetime) -> None:
        """Create or replace the publish job for `post_id`."""

    @abstractmethod
    def cancel(self, post_id: uuid.UUID) -> None:
        """Remove the job for `post_id`; no-op if there is none."""

    @abstractmethod
    def has_job(self, post_id: uuid.UUID) -> bool: ...


@dataclass
class ScheduledJob:
    post_id: uuid.UUID
    fire_at: datetime
    attempts: int = 0


class InMemoryJobDispatcher(JobDispatcher):
    def __init__(
        self,
        handler: Callable[[uuid.UUID], Any],
        max_attempts: Optional[int] = None,
        backoff_seconds: Optional[int] = None,
    ):
        settings = get_settings()
        self.handler = handler
        self.max_attempts = max_attempts or settings.publish_max_attempts
        self.backoff_seconds = settings.publish_backoff_seconds if backoff_seconds is None else backoff_seconds
        self.jobs: dict[uuid.UUID, ScheduledJob] = {}
        self._lock = threading.Lock()

    def schedule(self, post_id: uuid.UUID, fire_at: datetime) -> None:
        with self._lock:
            self.jobs[post_id] = ScheduledJob(post_id=post_id, fire_at=fire_at)
        logger.info("publish_job_scheduled post_id=%s fire_at=%s", post_id, fire_at.isoformat())

    def cancel(self, post_id: uuid.UUID) -> None:
        with self._lock:
            removed = self.jobs.pop(post_id, None)
        if removed is not None:
            logger.info("publish_job_cancelled post_id=%s", post_id)

    def has_job(self, post_id: uuid.UUID) -> bool:
        return post_id in self.jobs

    def get(self, post_id: uuid.UUID) -> Optional[ScheduledJob]:
        return self.jobs.get(post_id)

    def _finish(self, job: ScheduledJob) -> None:
        with self._lock:
            # a schedule() during the run replaced the job; keep the newer one
            if self.jobs.get(job.post_id) is job:
                del self.jobs[job.post_id]

    def run_due(self, now: Optional[datetime] = None) -> list[uuid.UUID]:
        """Fire every job whose time has come, oldest first. Returns the post ids that ran OK."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            due = sorted((j for j in self.jobs.values() if j.fire_at <= now), key=lambda j: j.fire_at)
        done = []
        for job in due:
            job.attempts += 1
            try:
                self.handler(job.post_id)
            except Exception:
                if job.attempts >= self.max_attempts:
                    logger.error(
                        "publish_job_abandoned post_id=%s attempts=%s",
                        job.post_id,
                        job.attempts,
                        exc_info=True,
                    )
                    self._finish(job)
                else:
                    job.fire_at = now + backoff_delay(job.attempts, self.backoff_seconds)
                    logger.warning(
                        "publish_job_retry post_id=%s attempt=%s next_fire_at=%s",
                        job.post_id,
                        job.attempts,
                        job.fire_at.isoformat(),
                        exc_info=True,
                    )
                continue
            self._finish(job)
            done.append(job.post_id)
        return done


class CeleryJobDispatcher(JobDispatcher):
    def __init__(self, client: Optional[redis.Redis] = None, registry_key: Optional[str] = None):
        settings = get_settings()
        self.redis = client or redis.Redis.from_url(settings.redis_url, decode_responses=True)
        self.registry_key = registry_key or settings.publish_job_registry_key

    def _revoke(self, task_id: str) -> None:
        from app.workers.celery_app import celery_app

        celery_app.control.revoke(task_id)

    def schedule(self, post_id: uuid.UUID, fire_at: datetime) -> None:
        from app.workers.tasks.publish import publish_post

        task_id = str(uuid.uuid4())
        previous = self.redis.hget(self.registry_key, str(post_id))
        # register first so the replaced task sees it is stale even if revoke is lost
        self.redis.hset(self.registry_key, str(post_id), task_id)
        if previous:
            self._revoke(previous)
        countdown = max(0.0, (fire_at - datetime.now(timezone.utc)).total_seconds())
        publish_post.apply_async(args=[str(post_id)], countdown=countdown, task_id=task_id)
        logger.info(
            "publish_job_scheduled post_id=%s task_id=%s countdown=%.0f replaced=%s",
            post_id,
            task_id,
            countdown,
            previous,
        )

    def cancel(self, post_id: uuid.UUID) -> None:
        previous = self.redis.hget(self.registry_key, str(post_id))
        if not previous:
            return
        self.redis.hdel(self.registry_key, str(post_id))
        self._revoke(previous)
        logger.info("publish_job_cancelled post_id=%s task_id=%s", post_id, previous)

    def has_job(self, post_id: uuid.UUID) -> bool:
        return bool(self.redis.hexists(self.registry_key, str(post_id)))

    def is_current(self, post_id: str, task_id: str) -> bool:
        return self.redis.hget(self.registry_key, str(post_id)) == task_id

    def release(self, post_id: str, task_id: str) -> None:
        """Drop the registry entry once the task is finished, unless it was replaced meanwhile."""
        if self.is_current(post_id, task_id):
            self.redis.hdel(self.registry_key, str(post_id))


@lru_cache
def get_dispatcher() -> JobDispatcher:
    return CeleryJobDispatcher()
