import json
from datetime import datetime
import logging
from typing import Any, Iterable, Protocol
from uuid import uuid4
from celery import Celery
from sqlalchemy.orm import Session

from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.database import SessionFactory
from tasktracker.common.exceptions import TransientQueueException
from tasktracker.jobs.model import OutboxJobModel
from tasktracker.jobs.schemas import BackoffPolicy, Job, JobKind
from tasktracker.tasks.schemas import TaskStatus

logger = logging.getLogger(__name__)

PROCESS_JOB_TASK_NAME = "Process Task Job"


class JobPublisher(Protocol):
    def publish(self, job: Job) -> None: ...


class CeleryJobPublisher:
    def __init__(self, celery_app: Celery, queue_name: str) -> None:
        self.celery_app = celery_app
        self.queue_name = queue_name

    def publish(self, job: Job) -> None:
        try:
            # The outbox id doubles as the Celery task id, so a job relayed
            # twice is still recognisable as one job downstream.
            self.celery_app.send_task(
                PROCESS_JOB_TASK_NAME,
                kwargs={
                    "kind": job.kind.value,
                    "payload": job.payload,
                    "max_attempts": job.backoff.max_attempts,
                    "backoff_delay_ms": job.backoff.delay_ms,
                },
                task_id=job.id,
                queue=self.queue_name,
            )
        except Exception as e:
            raise TransientQueueException(f"Failed to publish job '{job.id}'") from e


class EventQueue:
    """Transactional outbox in front of the Celery broker.

    ``enqueue``/``enqueue_bulk`` only write outbox rows on the caller's
    session, so a job exists exactly when the transaction that produced it
    commits. ``relay`` then forwards committed rows to the broker. Delivery
    is at-least-once: a row published right before a failed commit is
    published again on the next relay.
    """

    def __init__(
        self,
        publisher: JobPublisher,
        *,
        max_attempts: int = 3,
        backoff_base_ms: int = 1000,
    ) -> None:
        self.publisher = publisher
        self.max_attempts = max_attempts
        self.backoff_base_ms = backoff_base_ms

    def new_job(self, kind: JobKind, payload: dict[str, Any]) -> Job:
        return Job(
            id=str(uuid4()),
            kind=kind,
            payload=payload,
            backoff=BackoffPolicy(
                delay_ms=self.backoff_base_ms, max_attempts=self.max_attempts
            ),
            enqueued_at=get_current_datetime(),
        )

    def status_update_job(self, task_id: str, status: TaskStatus) -> Job:
        return self.new_job(
            JobKind.STATUS_UPDATE, {"task_id": task_id, "status": status.value}
        )

    def overdue_job(self, task_id: str) -> Job:
        return self.new_job(JobKind.OVERDUE_PROCESS, {"task_id": task_id})

    def _to_model(self, job: Job) -> OutboxJobModel:
        return OutboxJobModel(
            id=job.id,
            kind=job.kind.value,
            payload=json.dumps(job.payload),
            max_attempts=job.backoff.max_attempts,
            backoff_delay_ms=job.backoff.delay_ms,
            created_at=job.enqueued_at,
        )

    def _from_model(self, row: OutboxJobModel) -> Job:
        return Job(
            id=row.id,
            kind=JobKind(row.kind),
            payload=json.loads(row.payload),
            backoff=BackoffPolicy(
                delay_ms=row.backoff_delay_ms, max_attempts=row.max_attempts
            ),
            enqueued_at=row.created_at,
        )

    def enqueue(self, session: Session, job: Job) -> Job:
        session.add(self._to_model(job))
        session.flush()
        return job

    def enqueue_bulk(self, session: Session, jobs: Iterable[Job]) -> list[Job]:
        jobs = list(jobs)
        session.add_all([self._to_model(job) for job in jobs])
        session.flush()
        return jobs

    def pending_jobs(self, session: Session, limit: int) -> list[Job]:
        rows = (
            session.query(OutboxJobModel)
            .filter(OutboxJobModel.published_at.is_(None))
            .order_by(OutboxJobModel.created_at, OutboxJobModel.id)
            .limit(limit)
            .all()
        )
        return [self._from_model(row) for row in rows]

    def relay(self, session: Session, limit: int = 500) -> int:
        """Publish pending outbox rows oldest first and mark them published.

        Stops at the first publish failure so the remaining rows keep their
        order for the next relay.
        """
        rows = (
            session.query(OutboxJobModel)
            .filter(OutboxJobModel.published_at.is_(None))
            .order_by(OutboxJobModel.created_at, OutboxJobModel.id)
            .limit(limit)
            .with_for_update(skip_locked=True)
            .all()
        )

        published = 0
        for row in rows:
            try:
                self.publisher.publish(self._from_model(row))
            except TransientQueueException:
                logger.warning(
                    f"Stopped relaying after {published} job(s); job {row.id} will be retried",
                    exc_info=True,
                )
                break
            row.published_at = get_current_datetime()
            published += 1

        session.flush()
        if published:
            logger.info(f"Relayed {published} job(s) to the broker")
        return published

    def relay_pending(self, session_factory: SessionFactory, limit: int = 500) -> int:
        """Best-effort relay in its own transaction.

        Rows left behind are picked up by the periodic outbox relay.
        """
        try:
            with session_factory.begin() as session:
                return self.relay(session, limit)
        except Exception:
            logger.warning("Outbox relay failed; jobs remain pending", exc_info=True)
            return 0

    def cleanup_published(self, session: Session, older_than: datetime) -> int:
        """Delete rows relayed before ``older_than``. Pending rows are kept."""
        deleted = (
            session.query(OutboxJobModel)
            .filter(
                OutboxJobModel.published_at.is_not(None),
                OutboxJobModel.published_at < older_than,
            )
            .delete(synchronize_session=False)
        )
        if deleted:
            logger.info(f"Purged {deleted} published job(s) from the outbox")
        return deleted

    def retry_countdown(self, attempts_made: int, base_delay_ms: int | None = None) -> float:
        """Seconds to wait before the next attempt: base, 2 x base, 4 x base..."""
        base = self.backoff_base_ms if base_delay_ms is None else base_delay_ms
        return base * 2 ** max(attempts_made - 1, 0) / 1000

    def should_retry(self, attempts_made: int, max_attempts: int | None = None) -> bool:
        limit = self.max_attempts if max_attempts is None else max_attempts
        return attempts_made < limit
