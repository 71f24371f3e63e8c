"""Fired publish job: run the publishing orchestrator for one root post."""

import logging
import uuid

from app.config import get_settings
from app.services.job_dispatcher import CeleryJobDispatcher, backoff_delay
from app.services.publishing import publish_post_job
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, name="publishing.publish_post")
def publish_post(self, post_id: str):
    """Publish the post and its thread; retried with exponential backoff on infrastructure errors."""
    settings = get_settings()
    jobs = CeleryJobDispatcher()
    task_id = self.request.id
    if not jobs.is_current(post_id, task_id):
        # replaced or cancelled after this task was queued
        logger.info("publish_task_stale post_id=%s task_id=%s", post_id, task_id)
        return {"post_id": post_id, "status": "stale"}

    try:
        summary = publish_post_job(uuid.UUID(post_id))
    except Exception as exc:
        attempt = self.request.retries + 1
        if attempt >= settings.publish_max_attempts:
            logger.error("publish_job_abandoned post_id=%s attempts=%s", post_id, attempt, exc_info=True)
            jobs.release(post_id, task_id)
            raise
        countdown = backoff_delay(attempt, settings.publish_backoff_seconds).total_seconds()
        logger.warning("publish_job_retry post_id=%s attempt=%s countdown=%s", post_id, attempt, countdown)
        raise self.retry(exc=exc, countdown=countdown, max_retries=settings.publish_max_attempts - 1)

    jobs.release(post_id, task_id)
    return {
        "post_id": post_id,
        "status": "skipped" if summary.skipped else summary.status,
        "links": len(summary.links),
    }
