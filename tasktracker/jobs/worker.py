import logging
import time
from typing import Any
from celery import Task
from pydantic import ValidationError

from tasktracker.celery import celery_app
from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.exceptions import TerminalJobException
from tasktracker.common.rate_limiter import SlidingWindowRateLimiter
from tasktracker.common.redis import create_redis_client
from tasktracker.config import get_settings
from tasktracker.jobs.backend import (
    get_dead_letter_handler_backend,
    get_event_queue_backend,
    get_task_service_backend,
)
from tasktracker.jobs.handlers import dispatch_job
from tasktracker.jobs.queue import PROCESS_JOB_TASK_NAME
from tasktracker.jobs.schemas import DeadLetterPayload, JobKind

logger = logging.getLogger(__name__)

WORKER_POOL_RATE_LIMIT_KEY = "worker-pool"


def send_to_dead_letter(payload: DeadLetterPayload) -> None:
    """Hand an exhausted job to the dead-letter queue; failures are logged."""
    settings = get_settings()
    try:
        record_dead_letter.apply_async(
            kwargs={"payload": payload.model_dump(mode="json")},
            queue=settings.DEAD_LETTER_QUEUE_NAME,
        )
        logger.info(f"Moved job {payload.original_job_id} to dead-letter queue")
    except Exception:
        logger.exception(
            f"Failed to move job {payload.original_job_id} to dead-letter queue: "
            f"{payload.model_dump_json()}"
        )


@celery_app.task(bind=True, name=PROCESS_JOB_TASK_NAME)
def process_job(
    self: Task,
    kind: str,
    payload: dict[str, Any],
    max_attempts: int = 3,
    backoff_delay_ms: int = 1000,
) -> dict[str, Any]:
    """Celery task that applies one lifecycle job.

    Failures are retried with exponential backoff until ``max_attempts`` is
    reached; the last failure is dead-lettered and the job acknowledged.
    """
    settings = get_settings()
    redis_client = create_redis_client(
        settings.REDIS_URL, socket_timeout=settings.REDIS_SOCKET_TIMEOUT_SECONDS
    )
    event_queue = get_event_queue_backend(celery_app, settings)
    job_id = self.request.id
    attempts_made = self.request.retries + 1
    start_time = time.monotonic()

    logger.info(f"Starting job {job_id} [{kind}] - attempt {attempts_made}/{max_attempts}")

    try:
        try:
            SlidingWindowRateLimiter(
                redis_client,
                key=WORKER_POOL_RATE_LIMIT_KEY,
                limit=settings.WORKER_RATE_LIMIT,
                window_seconds=settings.WORKER_RATE_LIMIT_WINDOW_SECONDS,
            ).acquire()

            task_service = get_task_service_backend(
                redis_client=redis_client, celery_app=celery_app, settings=settings
            )
            result = dispatch_job(task_service, kind, payload)
            logger.info(
                f"Processed job {job_id} in {(time.monotonic() - start_time) * 1000:.0f}ms"
            )
            return result
        except Exception as e:
            if event_queue.should_retry(attempts_made, max_attempts):
                countdown = event_queue.retry_countdown(attempts_made, backoff_delay_ms)
                logger.warning(
                    f"Job {job_id} failed ({e}); retrying in {countdown}s "
                    f"(attempt {attempts_made + 1}/{max_attempts})"
                )
                raise self.retry(exc=e, countdown=countdown, max_retries=max_attempts - 1)

            logger.error(TerminalJobException(job_id, attempts_made, str(e)))
            send_to_dead_letter(
                DeadLetterPayload(
                    original=payload,
                    kind=kind,
                    error=str(e),
                    attempts=attempts_made,
                    failed_at=get_current_datetime(),
                    original_job_id=job_id,
                )
            )
            return {"success": False, "job_id": job_id, "dead_lettered": True}
    finally:
        redis_client.close()


@celery_app.task(name="Record Dead Letter")
def record_dead_letter(payload: dict[str, Any]) -> dict[str, Any]:
    """Consumer of the dead-letter queue. Never raises."""
    settings = get_settings()
    try:
        dead_letter = DeadLetterPayload.model_validate(payload)
    except ValidationError:
        logger.exception(f"Discarding malformed dead letter: {payload}")
        return {"recorded": False, "kind": JobKind.DEAD_LETTER.value}

    try:
        handler = get_dead_letter_handler_backend(settings)
        record = handler.record(dead_letter)
    except Exception:
        logger.exception(f"Failed to record dead letter: {dead_letter.model_dump_json()}")
        record = None
    return {
        "recorded": record is not None,
        "kind": JobKind.DEAD_LETTER.value,
        "original_job_id": dead_letter.original_job_id,
    }
