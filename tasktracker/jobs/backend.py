from celery import Celery

from tasktracker.cache.service import CacheService
from tasktracker.common.database import create_session_factory
from tasktracker.common.redis import RedisClient
from tasktracker.config import Settings
from tasktracker.jobs.dead_letter import DeadLetterHandler
from tasktracker.jobs.overdue import OverdueScanner
from tasktracker.jobs.queue import CeleryJobPublisher, EventQueue
from tasktracker.tasks.service import TaskService
from tasktracker.tasks.store import TaskStore


def get_event_queue_backend(celery_app: Celery, settings: Settings) -> EventQueue:
    return EventQueue(
        CeleryJobPublisher(celery_app, settings.TASK_QUEUE_NAME),
        max_attempts=settings.JOB_MAX_ATTEMPTS,
        backoff_base_ms=settings.JOB_BACKOFF_BASE_MS,
    )


def get_task_service_backend(
    *,
    redis_client: RedisClient,
    celery_app: Celery,
    settings: Settings,
) -> TaskService:
    return TaskService(
        session_factory=create_session_factory(settings.DATABASE_URL),
        store=TaskStore(),
        event_queue=get_event_queue_backend(celery_app, settings),
        cache=CacheService(
            redis_client=redis_client, default_ttl=settings.CACHE_TTL_SECONDS
        ),
        relay_batch_size=settings.OUTBOX_RELAY_BATCH_SIZE,
    )


def get_overdue_scanner_backend(celery_app: Celery, settings: Settings) -> OverdueScanner:
    return OverdueScanner(
        session_factory=create_session_factory(settings.DATABASE_URL),
        store=TaskStore(),
        event_queue=get_event_queue_backend(celery_app, settings),
        batch_size=settings.OVERDUE_SCAN_BATCH_SIZE,
        relay_batch_size=settings.OUTBOX_RELAY_BATCH_SIZE,
    )


def get_dead_letter_handler_backend(settings: Settings) -> DeadLetterHandler:
    return DeadLetterHandler(create_session_factory(settings.DATABASE_URL))
