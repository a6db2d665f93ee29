from fastapi import APIRouter, Depends, Query, status

from tasktracker.common.actor import Actor, get_current_actor
from tasktracker.common.exceptions import (
    ResourceType,
    UnauthorizedException,
    resource_not_found_response,
    unauthorized_response,
)
from tasktracker.tasks.dependencies import get_task_service
from tasktracker.tasks.schemas import (
    BatchItemResult,
    BatchRequest,
    ChangeStatusRequest,
    CreateTaskRequest,
    Task,
    TaskFilter,
    TaskPage,
    TaskPriority,
    TaskStats,
    TaskStatus,
    UpdateTaskRequest,
)
from tasktracker.tasks.service import TaskService


router = APIRouter(
    prefix="/tasks",
    tags=["Tasks"],
)


def get_accessible_task(
    task_id: str, task_service: TaskService, actor: Actor
) -> Task:
    task = task_service.get_task(task_id)
    if not actor.can_access(task.user_id):
        raise UnauthorizedException(ResourceType.TASK, task_id)
    return task


@router.post(
    "",
    status_code=status.HTTP_201_CREATED,
    responses={**unauthorized_response(ResourceType.TASK)},
)
def create_task(
    task_input: CreateTaskRequest,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
) -> Task:
    # Only admins can create tasks for other users
    if not actor.can_access(task_input.user_id):
        raise UnauthorizedException(ResourceType.TASK, task_input.user_id)
    return task_service.create_task(task_input)


@router.get("")
def list_tasks(
    status: TaskStatus | None = None,
    priority: TaskPriority | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    task_service: TaskService = Depends(get_task_service),
) -> TaskPage:
    return task_service.list_tasks(
        TaskFilter(status=status, priority=priority, page=page, limit=limit)
    )


@router.get("/stats")
def get_stats(task_service: TaskService = Depends(get_task_service)) -> TaskStats:
    return task_service.get_stats()


@router.post("/batch")
def batch_process(
    batch: BatchRequest,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
) -> list[BatchItemResult]:
    return task_service.batch_apply(batch.tasks, batch.action, actor)


@router.get(
    "/{task_id}",
    responses={
        **resource_not_found_response(ResourceType.TASK),
        **unauthorized_response(ResourceType.TASK),
    },
)
def get_task(
    task_id: str,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
) -> Task:
    return get_accessible_task(task_id, task_service, actor)


@router.patch(
    "/{task_id}",
    responses={
        **resource_not_found_response(ResourceType.TASK),
        **unauthorized_response(ResourceType.TASK),
    },
)
def update_task(
    task_id: str,
    task_input: UpdateTaskRequest,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
) -> Task:
    get_accessible_task(task_id, task_service, actor)
    return task_service.update_task(task_id, task_input)


@router.patch(
    "/{task_id}/status",
    responses={
        **resource_not_found_response(ResourceType.TASK),
        **unauthorized_response(ResourceType.TASK),
    },
)
def change_task_status(
    task_id: str,
    status_input: ChangeStatusRequest,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
) -> Task:
    get_accessible_task(task_id, task_service, actor)
    return task_service.change_status(task_id, status_input.status)


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={
        **resource_not_found_response(ResourceType.TASK),
        **unauthorized_response(ResourceType.TASK),
    },
)
def delete_task(
    task_id: str,
    task_service: TaskService = Depends(get_task_service),
    actor: Actor = Depends(get_current_actor),
):
    get_accessible_task(task_id, task_service, actor)
    task_service.delete_task(task_id)
