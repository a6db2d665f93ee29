from datetime import timedelta
import logging
from typing import Any
from celery import Celery, signals
from celery.schedules import crontab
from fastapi import Request

from tasktracker.config import get_settings

settings = get_settings()

redis_url = settings.REDIS_URL

celery_app = Celery(
    __name__,
    broker=redis_url,
    backend=redis_url,
    broker_connection_retry_on_startup=True,
    include=["tasktracker.jobs.worker", "tasktracker.jobs.scheduled"],
    result_expires=timedelta(days=settings.JOB_RESULT_RETENTION_DAYS),
)

celery_app.conf.update(
    task_default_queue=settings.TASK_QUEUE_NAME,
    task_routes={
        "Record Dead Letter": {"queue": settings.DEAD_LETTER_QUEUE_NAME},
    },
    # At-least-once: a message is acked only after the job returns, and is
    # redelivered if the worker dies or the visibility timeout expires.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_concurrency=settings.WORKER_CONCURRENCY,
    broker_transport_options={
        "visibility_timeout": settings.JOB_VISIBILITY_TIMEOUT_SECONDS
    },
    beat_schedule={
        "scan-overdue-tasks": {
            "task": "Scan Overdue Tasks",
            "schedule": crontab(minute=0),
        },
        "relay-job-outbox": {
            "task": "Relay Job Outbox",
            "schedule": settings.OUTBOX_RELAY_INTERVAL_SECONDS,
        },
        "purge-job-outbox": {
            "task": "Purge Job Outbox",
            "schedule": crontab(minute=30),
        },
    },
)


@signals.setup_logging.connect
def setup_celery_logging(**kwargs: Any) -> None:
    logging.basicConfig(level=settings.LOG_LEVEL)


@signals.worker_process_init.connect
def setup_worker_tracing(**kwargs: Any) -> None:
    if not settings.OTEL_ENABLED:
        return

    from tasktracker.common.opentelemetry import setup_worker_opentelemetry

    setup_worker_opentelemetry(f"{settings.OTEL_SERVICE_NAME}-worker")


def get_celery_app(request: Request) -> Celery:
    return request.app.state.celery_app
