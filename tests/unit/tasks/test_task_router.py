from datetime import datetime
import pytest
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.testclient import TestClient

from tasktracker.common.exceptions import (
    OperationFailedException,
    ResourceNotFoundException,
    UnauthorizedException,
    operation_failed_handler,
    resource_not_found_handler,
    unauthorized_handler,
    validation_exception_handler,
)
from tasktracker.tasks.dependencies import get_task_service
from tasktracker.tasks.router import router
from tasktracker.tasks.service import TaskService

OWNER_HEADERS = {"x-user-id": "user-1"}
OTHER_HEADERS = {"x-user-id": "user-2"}
ADMIN_HEADERS = {"x-user-id": "admin-1", "x-user-role": "admin"}


@pytest.fixture
def client(task_service: TaskService) -> TestClient:
    app = FastAPI()
    app.include_router(router)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(ResourceNotFoundException)(resource_not_found_handler)
    app.exception_handler(UnauthorizedException)(unauthorized_handler)
    app.exception_handler(OperationFailedException)(operation_failed_handler)
    app.dependency_overrides[get_task_service] = lambda: task_service
    return TestClient(app)


def test_create_task(client: TestClient) -> None:
    response = client.post(
        "/tasks",
        json={"title": "Write report", "user_id": "user-1", "priority": "HIGH"},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == 201
    body = response.json()
    assert body["title"] == "Write report"
    assert body["status"] == "PENDING"
    assert body["priority"] == "HIGH"


def test_create_task_for_another_user_requires_admin(client: TestClient) -> None:
    payload = {"title": "Delegated", "user_id": "user-2"}

    assert client.post("/tasks", json=payload, headers=OWNER_HEADERS).status_code == 403
    assert client.post("/tasks", json=payload, headers=ADMIN_HEADERS).status_code == 201


def test_create_task_validation_error(client: TestClient) -> None:
    response = client.post(
        "/tasks", json={"title": "", "user_id": "user-1"}, headers=OWNER_HEADERS
    )

    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"


def test_missing_actor_header_is_rejected(client: TestClient, create_task_row) -> None:
    create_task_row("task-1")

    assert client.get("/tasks/task-1").status_code == 422


def test_get_task_enforces_ownership(client: TestClient, create_task_row) -> None:
    create_task_row("task-1")

    assert client.get("/tasks/task-1", headers=OWNER_HEADERS).status_code == 200
    assert client.get("/tasks/task-1", headers=ADMIN_HEADERS).status_code == 200
    response = client.get("/tasks/task-1", headers=OTHER_HEADERS)
    assert response.status_code == 403
    assert response.json() == {"detail": "Unauthorized access to task 'task-1'"}


def test_get_missing_task(client: TestClient) -> None:
    response = client.get("/tasks/missing", headers=OWNER_HEADERS)

    assert response.status_code == 404
    assert response.json() == {"detail": "Task 'missing' not found"}


def test_list_tasks_with_filters(client: TestClient, create_task_row) -> None:
    create_task_row("t1")
    create_task_row("t2", status="COMPLETED")

    response = client.get(
        "/tasks", params={"status": "COMPLETED", "limit": 5}, headers=OWNER_HEADERS
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["limit"] == 5
    assert [task["id"] for task in body["data"]] == ["t2"]


def test_list_tasks_rejects_invalid_limit(client: TestClient) -> None:
    assert client.get("/tasks", params={"limit": 0}).status_code == 422


def test_change_status(client: TestClient, create_task_row) -> None:
    create_task_row("task-1")

    response = client.patch(
        "/tasks/task-1/status", json={"status": "IN_PROGRESS"}, headers=OWNER_HEADERS
    )

    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"


def test_update_task(client: TestClient, create_task_row) -> None:
    create_task_row("task-1")

    response = client.patch(
        "/tasks/task-1",
        json={"title": "Renamed", "due_date": datetime(2030, 1, 1).isoformat()},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == 200
    assert response.json()["title"] == "Renamed"


@pytest.mark.parametrize("body", [{}, {"title": None, "status": None}])
def test_update_task_without_fields_is_rejected(
    client: TestClient, create_task_row, body: dict
) -> None:
    create_task_row("task-1")

    response = client.patch("/tasks/task-1", json=body, headers=OWNER_HEADERS)

    assert response.status_code == 422
    assert response.json()["detail"] == "Validation error"
    assert (
        "At least one field must be provided to update"
        in response.json()["errors"][0]["msg"]
    )


def test_delete_task(client: TestClient, create_task_row) -> None:
    create_task_row("task-1")

    assert client.delete("/tasks/task-1", headers=OTHER_HEADERS).status_code == 403
    assert client.delete("/tasks/task-1", headers=OWNER_HEADERS).status_code == 204
    assert client.get("/tasks/task-1", headers=OWNER_HEADERS).status_code == 404


def test_batch(client: TestClient, create_task_row) -> None:
    create_task_row("t1")

    response = client.post(
        "/tasks/batch",
        json={"tasks": ["t1", "missing"], "action": "complete"},
        headers=OWNER_HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == [
        {"task_id": "t1", "success": True, "error": None},
        {"task_id": "missing", "success": False, "error": "Task 'missing' not found"},
    ]


def test_batch_requires_task_ids(client: TestClient) -> None:
    response = client.post(
        "/tasks/batch", json={"tasks": [], "action": "complete"}, headers=OWNER_HEADERS
    )

    assert response.status_code == 422


def test_stats(client: TestClient, create_task_row) -> None:
    create_task_row("t1")

    response = client.get("/tasks/stats")

    assert response.status_code == 200
    assert response.json()["total"] == 1
    assert response.json()["by_status"]["PENDING"] == 1
