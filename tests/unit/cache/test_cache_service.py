import json
from unittest.mock import Mock
import pytest
from pytest_mock import MockerFixture
from redis.exceptions import ConnectionError

from tasktracker.cache.keys import task_list_key
from tasktracker.cache.service import CacheService
from tasktracker.common.redis import RedisClient
from tasktracker.tasks.schemas import TaskFilter, TaskStatus


@pytest.fixture
def mock_redis_client(mocker: MockerFixture) -> Mock:
    return mocker.Mock(spec=RedisClient)


@pytest.fixture
def cache_service(mock_redis_client: Mock) -> CacheService:
    return CacheService(redis_client=mock_redis_client, default_ttl=300)


def test_get_returns_decoded_value(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    mock_redis_client.get.return_value = json.dumps({"id": "task-1"})

    assert cache_service.get("task:id:task-1") == {"id": "task-1"}
    mock_redis_client.get.assert_called_once_with("task:id:task-1")


def test_get_miss(cache_service: CacheService, mock_redis_client: Mock) -> None:
    mock_redis_client.get.return_value = None

    assert cache_service.get("task:id:missing") is None


def test_get_degrades_to_miss_on_error(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    mock_redis_client.get.side_effect = ConnectionError("Connection refused")

    assert cache_service.get("task:id:task-1") is None


def test_get_discards_unreadable_value(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    mock_redis_client.get.return_value = "{not json"

    assert cache_service.get("task:id:task-1") is None


def test_set_uses_default_ttl(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    cache_service.set("tasks:stats", {"total": 1})

    mock_redis_client.set.assert_called_once_with(
        "tasks:stats", json.dumps({"total": 1}), ex=300
    )


def test_set_with_explicit_ttl(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    cache_service.set("tasks:stats", {"total": 1}, ttl=60)

    assert mock_redis_client.set.call_args.kwargs["ex"] == 60


def test_set_swallows_errors(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    mock_redis_client.set.side_effect = ConnectionError("Connection refused")

    cache_service.set("tasks:stats", {"total": 1})


def test_delete(cache_service: CacheService, mock_redis_client: Mock) -> None:
    mock_redis_client.delete.return_value = 1
    assert cache_service.delete("task:id:task-1") is True

    mock_redis_client.delete.side_effect = ConnectionError("Connection refused")
    assert cache_service.delete("task:id:task-1") is False


def test_delete_by_prefix(cache_service: CacheService, mock_redis_client: Mock) -> None:
    mock_redis_client.scan_iter.return_value = iter(
        ["tasks:list:all:all:1:10", "tasks:list:PENDING:all:1:10"]
    )
    mock_redis_client.delete.return_value = 2

    assert cache_service.delete_by_prefix("tasks:list:") == 2
    mock_redis_client.scan_iter.assert_called_once_with(match="tasks:list:*")
    mock_redis_client.delete.assert_called_once_with(
        "tasks:list:all:all:1:10", "tasks:list:PENDING:all:1:10"
    )


def test_delete_by_prefix_without_matches(
    cache_service: CacheService, mock_redis_client: Mock
) -> None:
    mock_redis_client.scan_iter.return_value = iter([])

    assert cache_service.delete_by_prefix("tasks:list:") == 0
    mock_redis_client.delete.assert_not_called()


def test_task_list_key_encodes_filters() -> None:
    assert task_list_key(TaskFilter()) == "tasks:list:all:all:1:10"
    assert (
        task_list_key(TaskFilter(status=TaskStatus.PENDING, page=2, limit=50))
        == "tasks:list:PENDING:all:2:50"
    )
