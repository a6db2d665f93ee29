from unittest.mock import Mock
import pytest
from pytest_mock import MockerFixture

from tasktracker.common.rate_limiter import (
    SLIDING_WINDOW_SCRIPT,
    SlidingWindowRateLimiter,
)
from tasktracker.common.redis import RedisClient


@pytest.fixture
def mock_script(mocker: MockerFixture) -> Mock:
    return mocker.Mock(return_value=0)


@pytest.fixture
def mock_redis_client(mocker: MockerFixture, mock_script: Mock) -> Mock:
    redis_client = mocker.Mock(spec=RedisClient)
    redis_client.register_script.return_value = mock_script
    return redis_client


@pytest.fixture
def rate_limiter(mock_redis_client: Mock) -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(
        mock_redis_client, key="worker-pool", limit=100, window_seconds=1.0
    )


def test_registers_sliding_window_script(
    rate_limiter: SlidingWindowRateLimiter, mock_redis_client: Mock
) -> None:
    mock_redis_client.register_script.assert_called_once_with(SLIDING_WINDOW_SCRIPT)
    assert rate_limiter.key == "ratelimit:worker-pool"
    assert rate_limiter.window_ms == 1000


def test_hit_admitted(rate_limiter: SlidingWindowRateLimiter, mock_script: Mock) -> None:
    assert rate_limiter.hit() == 0

    kwargs = mock_script.call_args.kwargs
    assert kwargs["keys"] == ["ratelimit:worker-pool"]
    assert kwargs["args"][:2] == [100, 1000]


def test_hit_rejected_returns_wait_seconds(
    rate_limiter: SlidingWindowRateLimiter, mock_script: Mock
) -> None:
    mock_script.return_value = 250

    assert rate_limiter.hit() == 0.25


def test_hits_use_unique_members(
    rate_limiter: SlidingWindowRateLimiter, mock_script: Mock
) -> None:
    rate_limiter.hit()
    rate_limiter.hit()

    members = {call.kwargs["args"][3] for call in mock_script.call_args_list}
    assert len(members) == 2


def test_acquire_waits_until_admitted(
    rate_limiter: SlidingWindowRateLimiter, mock_script: Mock, mocker: MockerFixture
) -> None:
    mock_script.side_effect = [250, 100, 0]
    mock_sleep = mocker.patch("tasktracker.common.rate_limiter.time.sleep")

    rate_limiter.acquire()

    assert [call.args[0] for call in mock_sleep.call_args_list] == [0.25, 0.1]


def test_acquire_gives_up_after_max_wait(
    rate_limiter: SlidingWindowRateLimiter, mock_script: Mock, mocker: MockerFixture
) -> None:
    mock_script.return_value = 400
    mocker.patch("tasktracker.common.rate_limiter.time.sleep")

    with pytest.raises(TimeoutError):
        rate_limiter.acquire(max_wait_seconds=1.0)
