import logging
from typing import Any, Callable

from tasktracker.common.exceptions import JobValidationException
from tasktracker.jobs.schemas import JobKind
from tasktracker.tasks.schemas import TaskStatus
from tasktracker.tasks.service import TaskService

logger = logging.getLogger(__name__)

JobHandler = Callable[[TaskService, dict[str, Any]], dict[str, Any]]


def _require_task_id(payload: dict[str, Any]) -> str:
    task_id = payload.get("task_id")
    if not task_id or not isinstance(task_id, str):
        raise JobValidationException("Missing required field: task_id")
    return task_id


def handle_status_update(
    task_service: TaskService, payload: dict[str, Any]
) -> dict[str, Any]:
    task_id = _require_task_id(payload)
    status = payload.get("status")
    if not status:
        raise JobValidationException("Missing required field: status")

    try:
        target_status = TaskStatus(status)
    except ValueError:
        logger.warning(f"Invalid status update attempt: {status} for task {task_id}")
        raise JobValidationException(f"Invalid status: {status}")

    task = task_service.change_status(task_id, target_status)
    return {"success": True, "task_id": task.id, "status": task.status.value}


def handle_overdue(task_service: TaskService, payload: dict[str, Any]) -> dict[str, Any]:
    task_id = _require_task_id(payload)

    logger.info(f"Marking overdue task {task_id} as {TaskStatus.IN_PROGRESS.value}")
    task = task_service.change_status(task_id, TaskStatus.IN_PROGRESS)
    return {"success": True, "task_id": task.id, "status": task.status.value}


JOB_HANDLERS: dict[JobKind, JobHandler] = {
    JobKind.STATUS_UPDATE: handle_status_update,
    JobKind.OVERDUE_PROCESS: handle_overdue,
}


def dispatch_job(
    task_service: TaskService, kind: str, payload: dict[str, Any]
) -> dict[str, Any]:
    try:
        handler = JOB_HANDLERS[JobKind(kind)]
    except (ValueError, KeyError):
        raise JobValidationException(f"Unknown job kind: {kind}")
    return handler(task_service, payload)
