from unittest.mock import Mock
import pytest
from pytest_mock import MockerFixture

from tasktracker.common.exceptions import JobValidationException
from tasktracker.jobs.handlers import dispatch_job
from tasktracker.tasks.schemas import TaskStatus
from tasktracker.tasks.service import TaskService


@pytest.fixture
def mock_task_service(mocker: MockerFixture) -> Mock:
    service = mocker.Mock(spec=TaskService)
    service.change_status.side_effect = lambda task_id, status: mocker.Mock(
        id=task_id, status=status
    )
    return service


def test_status_update_changes_status(mock_task_service: Mock) -> None:
    result = dispatch_job(
        mock_task_service, "status-update", {"task_id": "task-1", "status": "COMPLETED"}
    )

    mock_task_service.change_status.assert_called_once_with(
        "task-1", TaskStatus.COMPLETED
    )
    assert result == {"success": True, "task_id": "task-1", "status": "COMPLETED"}


@pytest.mark.parametrize(
    "payload, message",
    [
        ({"status": "COMPLETED"}, "Missing required field: task_id"),
        ({"task_id": "", "status": "COMPLETED"}, "Missing required field: task_id"),
        ({"task_id": "task-1"}, "Missing required field: status"),
        ({"task_id": "task-1", "status": "DONE"}, "Invalid status: DONE"),
    ],
)
def test_status_update_rejects_malformed_payload(
    mock_task_service: Mock, payload: dict, message: str
) -> None:
    with pytest.raises(JobValidationException, match=message):
        dispatch_job(mock_task_service, "status-update", payload)

    mock_task_service.change_status.assert_not_called()


def test_overdue_moves_task_to_in_progress(mock_task_service: Mock) -> None:
    result = dispatch_job(mock_task_service, "overdue-process", {"task_id": "task-1"})

    mock_task_service.change_status.assert_called_once_with(
        "task-1", TaskStatus.IN_PROGRESS
    )
    assert result["status"] == "IN_PROGRESS"


def test_overdue_requires_task_id(mock_task_service: Mock) -> None:
    with pytest.raises(JobValidationException):
        dispatch_job(mock_task_service, "overdue-process", {})


@pytest.mark.parametrize("kind", ["unknown", "dead-letter"])
def test_unknown_kind_is_rejected(mock_task_service: Mock, kind: str) -> None:
    with pytest.raises(JobValidationException, match=f"Unknown job kind: {kind}"):
        dispatch_job(mock_task_service, kind, {"task_id": "task-1"})


def test_redelivered_status_update_is_idempotent(
    task_service: TaskService, create_task_row
) -> None:
    create_task_row("task-1")
    payload = {"task_id": "task-1", "status": "COMPLETED"}

    first = dispatch_job(task_service, "status-update", payload)
    second = dispatch_job(task_service, "status-update", payload)

    assert first == second
    assert task_service.get_task("task-1").status == TaskStatus.COMPLETED
