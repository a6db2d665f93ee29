from datetime import datetime
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, Iterator
from unittest.mock import Mock
import pytest
from pytest_mock import MockerFixture

from tasktracker.cache.service import CacheService
from tasktracker.common.database import SessionFactory, create_session_factory
from tasktracker.jobs.queue import CeleryJobPublisher, EventQueue
from tasktracker.tasks.schemas import (
    CreateTaskRequest,
    Task,
    TaskPriority,
    TaskStatus,
)
from tasktracker.tasks.service import TaskService
from tasktracker.tasks.store import TaskStore

TEST_TIMESTAMP = datetime.fromisoformat("2024-01-01T12:00:00")


class InMemoryRedis:
    """The subset of the Redis client used by CacheService."""

    def __init__(self) -> None:
        self.data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self.data[key] = value
        return True

    def delete(self, *keys: str) -> int:
        return sum(1 for key in keys if self.data.pop(key, None) is not None)

    def scan_iter(self, match: str = "*") -> Iterator[str]:
        return iter([key for key in list(self.data) if fnmatchcase(key, match)])


@pytest.fixture
def session_factory(tmp_path: Path) -> SessionFactory:
    return create_session_factory(f"sqlite:///{tmp_path / 'test_tasktracker.db'}")


@pytest.fixture
def task_store() -> TaskStore:
    return TaskStore()


@pytest.fixture
def mock_publisher(mocker: MockerFixture) -> Mock:
    return mocker.Mock(spec=CeleryJobPublisher)


@pytest.fixture
def event_queue(mock_publisher: Mock) -> EventQueue:
    return EventQueue(mock_publisher, max_attempts=3, backoff_base_ms=1000)


@pytest.fixture
def in_memory_redis() -> InMemoryRedis:
    return InMemoryRedis()


@pytest.fixture
def cache(in_memory_redis: InMemoryRedis) -> CacheService:
    return CacheService(redis_client=in_memory_redis, default_ttl=300)  # type: ignore


@pytest.fixture
def task_service(
    session_factory: SessionFactory,
    task_store: TaskStore,
    event_queue: EventQueue,
    cache: CacheService,
) -> TaskService:
    return TaskService(
        session_factory=session_factory,
        store=task_store,
        event_queue=event_queue,
        cache=cache,
    )


@pytest.fixture
def create_task_row(session_factory: SessionFactory, task_store: TaskStore):
    """Insert a task directly through the store, bypassing the service."""

    def _create_task_row(
        id: str,
        *,
        user_id: str = "user-1",
        status: TaskStatus = TaskStatus.PENDING,
        priority: TaskPriority = TaskPriority.MEDIUM,
        due_date: datetime | None = None,
        **fields: Any,
    ) -> Task:
        with session_factory.begin() as session:
            return task_store.create(
                session,
                id=id,
                fields=CreateTaskRequest(
                    title=fields.get("title", f"Task {id}"),
                    description=fields.get("description"),
                    status=status,
                    priority=priority,
                    due_date=due_date,
                    user_id=user_id,
                ),
                timestamp=fields.get("timestamp", TEST_TIMESTAMP),
            )

    return _create_task_row
