import logging
from typing import Callable, TypeVar
from uuid import uuid4
from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from tasktracker.cache.keys import (
    TASK_LIST_PREFIX,
    TASK_STATS_KEY,
    task_key,
    task_list_key,
)
from tasktracker.cache.service import CacheService
from tasktracker.common.actor import Actor
from tasktracker.common.current_datetime import get_current_datetime
from tasktracker.common.database import SessionFactory
from tasktracker.common.exceptions import (
    InvalidActionException,
    OperationFailedException,
    ResourceNotFoundException,
    ResourceType,
    UnauthorizedException,
)
from tasktracker.jobs.queue import EventQueue
from tasktracker.tasks.schemas import (
    BatchAction,
    BatchItemResult,
    CreateTaskRequest,
    Task,
    TaskFilter,
    TaskPage,
    TaskStats,
    TaskStatus,
    UpdateTaskRequest,
)
from tasktracker.tasks.store import TaskStore

logger = logging.getLogger(__name__)

T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)


class TaskService:
    """Task lifecycle operations.

    Task writes and the jobs they produce share one transaction; the cache is
    invalidated only after that transaction commits.
    """

    def __init__(
        self,
        *,
        session_factory: SessionFactory,
        store: TaskStore,
        event_queue: EventQueue,
        cache: CacheService,
        relay_batch_size: int = 500,
    ) -> None:
        self.session_factory = session_factory
        self.store = store
        self.event_queue = event_queue
        self.cache = cache
        self.relay_batch_size = relay_batch_size

    def _in_transaction(self, operation: Callable[[Session], T], failure_message: str) -> T:
        try:
            with self.session_factory.begin() as session:
                return operation(session)
        except ResourceNotFoundException:
            raise
        except Exception as e:
            logger.exception(failure_message)
            raise OperationFailedException(failure_message) from e

    def _get_cached(self, key: str, model: type[M]) -> M | None:
        cached = self.cache.get(key)
        if cached is None:
            return None
        try:
            return model.model_validate(cached)
        except ValidationError as e:
            # Stale shape, e.g. written before a schema change
            logger.warning(f"Discarding invalid cache entry '{key}': {e}")
            self.cache.delete(key)
            return None

    def _invalidate(self, *task_ids: str) -> None:
        for task_id in task_ids:
            self.cache.delete(task_key(task_id))
        self.cache.delete_by_prefix(TASK_LIST_PREFIX)
        self.cache.delete(TASK_STATS_KEY)

    def _after_commit(self, *task_ids: str, jobs_enqueued: bool) -> None:
        if task_ids:
            self._invalidate(*task_ids)
        if jobs_enqueued:
            self.event_queue.relay_pending(self.session_factory, self.relay_batch_size)

    def _apply_update(
        self, session: Session, task_id: str, updates: UpdateTaskRequest
    ) -> tuple[Task, bool]:
        current = self.store.get(session, task_id)
        status_changed = updates.status is not None and updates.status != current.status

        updated = self.store.update(session, task_id, updates, get_current_datetime())
        if status_changed:
            self.event_queue.enqueue(
                session, self.event_queue.status_update_job(task_id, updated.status)
            )
        return updated, status_changed

    def create_task(self, task_input: CreateTaskRequest) -> Task:
        def create(session: Session) -> Task:
            return self.store.create(
                session,
                id=str(uuid4()),
                fields=task_input,
                timestamp=get_current_datetime(),
            )

        task = self._in_transaction(create, "Failed to create task")
        self._after_commit(task.id, jobs_enqueued=False)
        logger.info(f"Created task {task.id}")
        return task

    def get_task(self, task_id: str) -> Task:
        cache_key = task_key(task_id)
        cached = self._get_cached(cache_key, Task)
        if cached is not None:
            return cached

        with self.session_factory() as session:
            task = self.store.get(session, task_id)

        self.cache.set(cache_key, task.model_dump(mode="json"))
        return task

    def list_tasks(self, filters: TaskFilter) -> TaskPage:
        cache_key = task_list_key(filters)
        cached = self._get_cached(cache_key, TaskPage)
        if cached is not None:
            return cached

        with self.session_factory() as session:
            tasks, total = self.store.query(session, filters)

        page = TaskPage(data=tasks, total=total, page=filters.page, limit=filters.limit)
        self.cache.set(cache_key, page.model_dump(mode="json"))
        return page

    def get_stats(self) -> TaskStats:
        cached = self._get_cached(TASK_STATS_KEY, TaskStats)
        if cached is not None:
            return cached

        with self.session_factory() as session:
            stats = self.store.stats(session, get_current_datetime())

        self.cache.set(TASK_STATS_KEY, stats.model_dump(mode="json"))
        return stats

    def update_task(self, task_id: str, updates: UpdateTaskRequest) -> Task:
        task, status_changed = self._in_transaction(
            lambda session: self._apply_update(session, task_id, updates),
            "Failed to update task",
        )
        self._after_commit(task_id, jobs_enqueued=status_changed)
        return task

    def change_status(self, task_id: str, status: TaskStatus) -> Task:
        def change(session: Session) -> tuple[Task, bool]:
            current = self.store.get(session, task_id)
            if current.status == status:
                return current, False
            return self._apply_update(session, task_id, UpdateTaskRequest(status=status))

        task, status_changed = self._in_transaction(
            change, f"Failed to change status of task {task_id}"
        )
        if status_changed:
            logger.info(f"Task {task_id} status changed to {status.value}")
            self._after_commit(task_id, jobs_enqueued=True)
        return task

    def delete_task(self, task_id: str) -> None:
        self._in_transaction(
            lambda session: self.store.delete(session, task_id),
            "Failed to delete task",
        )
        self._after_commit(task_id, jobs_enqueued=False)
        logger.info(f"Deleted task {task_id}")

    def _apply_batch_item(
        self, session: Session, task_id: str, action: str, actor: Actor
    ) -> bool:
        """Apply one batch action; returns whether a job was enqueued."""
        try:
            batch_action = BatchAction(action)
        except ValueError:
            raise InvalidActionException(action)

        task = self.store.get(session, task_id)
        if not actor.can_access(task.user_id):
            raise UnauthorizedException(ResourceType.TASK, task_id)

        if batch_action == BatchAction.COMPLETE:
            if task.status == TaskStatus.COMPLETED:
                return False
            _, status_changed = self._apply_update(
                session, task_id, UpdateTaskRequest(status=TaskStatus.COMPLETED)
            )
            return status_changed

        self.store.delete(session, task_id)
        return False

    def batch_apply(
        self, task_ids: list[str], action: str, actor: Actor
    ) -> list[BatchItemResult]:
        """Apply ``action`` to every task under one transaction.

        Item-level failures (missing task, foreign task, unknown action) are
        reported per item; anything else rolls the whole batch back.
        """

        def apply(session: Session) -> tuple[list[BatchItemResult], bool]:
            results: list[BatchItemResult] = []
            jobs_enqueued = False
            for task_id in task_ids:
                try:
                    jobs_enqueued |= self._apply_batch_item(
                        session, task_id, action, actor
                    )
                    results.append(BatchItemResult(task_id=task_id, success=True))
                except (
                    ResourceNotFoundException,
                    UnauthorizedException,
                    InvalidActionException,
                ) as e:
                    results.append(
                        BatchItemResult(task_id=task_id, success=False, error=str(e))
                    )
            return results, jobs_enqueued

        try:
            with self.session_factory.begin() as session:
                results, jobs_enqueued = apply(session)
        except Exception as e:
            logger.exception("Failed to apply batch")
            raise OperationFailedException("Failed to apply batch") from e

        succeeded = [result.task_id for result in results if result.success]
        self._after_commit(*succeeded, jobs_enqueued=jobs_enqueued)
        logger.info(
            f"Applied batch '{action}' to {len(succeeded)}/{len(task_ids)} task(s)"
        )
        return results
