"""Celery configuration."""
from celery import Celery
from resonance.config import settings

celery_app = Celery(
    "resonance",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["resonance.tasks.analysis"],
)

celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,  # one long ffmpeg pass per worker slot
    result_expires=86400,
    task_routes={
        "resonance.tasks.analysis.*": {"queue": "analysis"},
    },
)
