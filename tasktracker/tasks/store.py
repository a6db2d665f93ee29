from datetime import datetime
from sqlalchemy import func, or_, and_
from sqlalchemy.orm import Session

from tasktracker.common.exceptions import ResourceNotFoundException, ResourceType
from tasktracker.tasks.model import TaskModel
from tasktracker.tasks.schemas import (
    CreateTaskRequest,
    Task,
    TaskFilter,
    TaskPriority,
    TaskStats,
    TaskStatus,
    UpdateTaskRequest,
)

OverdueCursor = tuple[datetime, str]


class TaskStore:
    """CRUD over task rows.

    Every method runs on the caller's session and never commits, so the
    caller decides the transaction boundary.
    """

    def _get_model(self, session: Session, task_id: str) -> TaskModel:
        task = session.get(TaskModel, task_id)
        if not task:
            raise ResourceNotFoundException(ResourceType.TASK, task_id)
        return task

    def create(
        self,
        session: Session,
        *,
        id: str,
        fields: CreateTaskRequest,
        timestamp: datetime,
    ) -> Task:
        task = TaskModel(
            id=id,
            title=fields.title,
            description=fields.description,
            status=fields.status,
            priority=fields.priority,
            due_date=fields.due_date,
            user_id=fields.user_id,
            created_at=timestamp,
            updated_at=timestamp,
        )
        session.add(task)
        session.flush()
        return Task.model_validate(task)

    def get(self, session: Session, task_id: str) -> Task:
        return Task.model_validate(self._get_model(session, task_id))

    def update(
        self,
        session: Session,
        task_id: str,
        updates: UpdateTaskRequest,
        timestamp: datetime,
    ) -> Task:
        task = self._get_model(session, task_id)

        if updates.title is not None:
            task.title = updates.title
        if updates.description is not None:
            task.description = updates.description
        if updates.status is not None:
            task.status = updates.status
        if updates.priority is not None:
            task.priority = updates.priority
        if updates.due_date is not None:
            task.due_date = updates.due_date

        task.updated_at = timestamp
        session.flush()
        return Task.model_validate(task)

    def delete(self, session: Session, task_id: str) -> None:
        task = self._get_model(session, task_id)
        session.delete(task)
        session.flush()

    def query(self, session: Session, filters: TaskFilter) -> tuple[list[Task], int]:
        query = session.query(TaskModel)
        if filters.status:
            query = query.filter(TaskModel.status == filters.status)
        if filters.priority:
            query = query.filter(TaskModel.priority == filters.priority)

        total = query.count()
        tasks = (
            query.order_by(TaskModel.created_at.desc(), TaskModel.id)
            .offset((filters.page - 1) * filters.limit)
            .limit(filters.limit)
            .all()
        )
        return [Task.model_validate(task) for task in tasks], total

    def _overdue_query(self, session: Session, before: datetime, status: TaskStatus):
        return session.query(TaskModel).filter(
            TaskModel.due_date.is_not(None),
            TaskModel.due_date < before,
            TaskModel.status == status,
        )

    def count_overdue(
        self, session: Session, *, before: datetime, status: TaskStatus
    ) -> int:
        return self._overdue_query(session, before, status).count()

    def list_overdue(
        self,
        session: Session,
        *,
        before: datetime,
        status: TaskStatus,
        limit: int,
        offset: int = 0,
        after: OverdueCursor | None = None,
    ) -> list[Task]:
        """List overdue tasks in stable ``(due_date, id)`` order.

        ``after`` resumes strictly after a previously returned row, which keeps
        pagination stable while rows leave the result set concurrently.
        """
        query = self._overdue_query(session, before, status)
        if after is not None:
            after_due_date, after_id = after
            query = query.filter(
                or_(
                    TaskModel.due_date > after_due_date,
                    and_(TaskModel.due_date == after_due_date, TaskModel.id > after_id),
                )
            )

        tasks = (
            query.order_by(TaskModel.due_date, TaskModel.id)
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [Task.model_validate(task) for task in tasks]

    def stats(self, session: Session, now: datetime) -> TaskStats:
        by_status = {status: 0 for status in TaskStatus}
        for status, count in (
            session.query(TaskModel.status, func.count(TaskModel.id))
            .group_by(TaskModel.status)
            .all()
        ):
            by_status[status] = count

        by_priority = {priority: 0 for priority in TaskPriority}
        for priority, count in (
            session.query(TaskModel.priority, func.count(TaskModel.id))
            .group_by(TaskModel.priority)
            .all()
        ):
            by_priority[priority] = count

        return TaskStats(
            total=sum(by_status.values()),
            by_status=by_status,
            by_priority=by_priority,
            overdue=self.count_overdue(session, before=now, status=TaskStatus.PENDING),
        )
