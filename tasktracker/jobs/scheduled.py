from datetime import timedelta
import logging
from typing import Any

from tasktracker.celery import celery_app
from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.database import create_session_factory
from tasktracker.config import get_settings
from tasktracker.jobs.backend import get_event_queue_backend, get_overdue_scanner_backend

logger = logging.getLogger(__name__)


@celery_app.task(name="Scan Overdue Tasks")
def scan_overdue_tasks() -> dict[str, Any]:
    settings = get_settings()
    scanner = get_overdue_scanner_backend(celery_app, settings)
    result = scanner.scan()
    return result.model_dump()


@celery_app.task(name="Relay Job Outbox")
def relay_job_outbox() -> dict[str, Any]:
    """Periodic sweep publishing outbox rows left behind by best-effort relays."""
    settings = get_settings()
    event_queue = get_event_queue_backend(celery_app, settings)
    session_factory = create_session_factory(settings.DATABASE_URL)
    with session_factory.begin() as session:
        relayed = event_queue.relay(session, settings.OUTBOX_RELAY_BATCH_SIZE)
    return {"relayed": relayed}


@celery_app.task(name="Purge Job Outbox")
def purge_job_outbox() -> dict[str, Any]:
    settings = get_settings()
    event_queue = get_event_queue_backend(celery_app, settings)
    session_factory = create_session_factory(settings.DATABASE_URL)
    cutoff = get_current_datetime() - timedelta(hours=settings.OUTBOX_RETENTION_HOURS)
    with session_factory.begin() as session:
        purged = event_queue.cleanup_published(session, cutoff)
    return {"purged": purged}
