"""
Celery application configuration.

Runs document processing in the background with Redis as the broker.
"""
from celery import Celery

from docintel.config import get_settings

settings = get_settings()

celery_app = Celery(
    "docintel",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["docintel.tasks.pipeline_tasks"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,

    task_acks_late=True,  # Acknowledge after task completes
    task_reject_on_worker_lost=True,
    task_time_limit=600,
    task_soft_time_limit=540,

    result_expires=86400,

    worker_prefetch_multiplier=1,

    task_default_retry_delay=60,
    task_max_retries=3,
)

celery_app.conf.task_routes = {
    "docintel.tasks.pipeline_tasks.process_document_task": {"queue": "document_processing"},
}
