import logging
import math
import time
from datetime import datetime

from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.database import SessionFactory
from tasktracker.jobs.queue import EventQueue
from tasktracker.jobs.schemas import OverdueScanResult
from tasktracker.tasks.store import OverdueCursor, TaskStore
from tasktracker.tasks.schemas import TaskStatus

logger = logging.getLogger(__name__)


class OverdueScanner:
    """Finds pending tasks past their due date and enqueues one
    ``overdue-process`` job per task."""

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        store: TaskStore,
        event_queue: EventQueue,
        batch_size: int = 100,
        relay_batch_size: int = 500,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.event_queue = event_queue
        self.batch_size = batch_size
        self.relay_batch_size = relay_batch_size

    def scan(self, now: datetime | None = None) -> OverdueScanResult:
        start_time = time.monotonic()
        # Every batch is queried against the same cutoff.
        cutoff = now or get_current_datetime()

        try:
            with self.session_factory() as session:
                total = self.store.count_overdue(
                    session, before=cutoff, status=TaskStatus.PENDING
                )

            if total == 0:
                logger.debug("No overdue tasks found")
                return OverdueScanResult(total=0, batches=0, enqueued=0)

            total_batches = math.ceil(total / self.batch_size)
            logger.info(
                f"Found {total} overdue tasks. Processing in batches of {self.batch_size}..."
            )

            cursor: OverdueCursor | None = None
            batches = 0
            enqueued = 0
            for batch_number in range(1, total_batches + 1):
                with self.session_factory.begin() as session:
                    tasks = self.store.list_overdue(
                        session,
                        before=cutoff,
                        status=TaskStatus.PENDING,
                        limit=self.batch_size,
                        after=cursor,
                    )
                    if not tasks:
                        break
                    self.event_queue.enqueue_bulk(
                        session, [self.event_queue.overdue_job(task.id) for task in tasks]
                    )

                last = tasks[-1]
                if last.due_date is not None:
                    cursor = (last.due_date, last.id)
                batches += 1
                enqueued += len(tasks)
                logger.debug(
                    f"Enqueued batch {batch_number}/{total_batches} with {len(tasks)} tasks"
                )
                self.event_queue.relay_pending(self.session_factory, self.relay_batch_size)

            logger.info(
                f"Enqueued {enqueued} overdue tasks in {batches} batches "
                f"in {(time.monotonic() - start_time) * 1000:.0f}ms"
            )
            return OverdueScanResult(total=total, batches=batches, enqueued=enqueued)
        except Exception:
            logger.exception("Error in overdue tasks check")
            raise
