from celery import Celery
from fastapi import Depends

from tasktracker.celery import get_celery_app
from tasktracker.common.database import SessionFactory, get_session_factory
from tasktracker.config import Settings, get_settings
from tasktracker.jobs.backend import get_event_queue_backend
from tasktracker.jobs.dead_letter import DeadLetterHandler
from tasktracker.jobs.queue import EventQueue


def get_event_queue(
    celery_app: Celery = Depends(get_celery_app),
    settings: Settings = Depends(get_settings),
) -> EventQueue:
    return get_event_queue_backend(celery_app, settings)


def get_dead_letter_handler(
    session_factory: SessionFactory = Depends(get_session_factory),
) -> DeadLetterHandler:
    return DeadLetterHandler(session_factory)
