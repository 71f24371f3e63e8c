"""Celery app configuration."""

from celery import Celery
from app.config import get_settings

settings = get_settings()
celery_app = Celery(
    "post_pipeline",
    broker=settings.celery_broker,
    backend=settings.redis_url,
    include=[
        "app.workers.tasks.publish",
    ],
)
celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    # countdown tasks can wait days; keep them invisible to other workers until due
    broker_transport_options={"visibility_timeout": settings.celery_visibility_timeout_seconds},
)
