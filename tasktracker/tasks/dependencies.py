from fastapi import Depends

from tasktracker.cache.dependencies import get_cache_service
from tasktracker.cache.service import CacheService
from tasktracker.common.database import SessionFactory, get_session_factory
from tasktracker.config import Settings, get_settings
from tasktracker.jobs.dependencies import get_event_queue
from tasktracker.jobs.queue import EventQueue
from tasktracker.tasks.service import TaskService
from tasktracker.tasks.store import TaskStore


def get_task_service(
    session_factory: SessionFactory = Depends(get_session_factory),
    event_queue: EventQueue = Depends(get_event_queue),
    cache: CacheService = Depends(get_cache_service),
    settings: Settings = Depends(get_settings),
) -> TaskService:
    return TaskService(
        session_factory=session_factory,
        store=TaskStore(),
        event_queue=event_queue,
        cache=cache,
        relay_batch_size=settings.OUTBOX_RELAY_BATCH_SIZE,
    )
