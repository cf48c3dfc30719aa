"""Tests for training job slot limiting."""
import pytest
from unittest.mock import MagicMock

from pricelab.services.exceptions import TooManyTrainingJobs
from pricelab.services.job_limiter import JobSlotLimiter


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis_mock = MagicMock()
    redis_mock.scard.return_value = 0
    redis_mock.pipeline.return_value = MagicMock()
    return redis_mock


def test_can_start_job_when_under_limit(mock_redis):
    mock_redis.scard.return_value = 1
    limiter = JobSlotLimiter(mock_redis, default_limit=2)

    assert limiter.can_start_job("user_123") is True


def test_cannot_start_job_when_at_limit(mock_redis):
    mock_redis.scard.return_value = 2
    limiter = JobSlotLimiter(mock_redis, default_limit=2)

    assert limiter.can_start_job("user_123") is False


def test_reserve_adds_job_to_user_set(mock_redis):
    pipe_mock = MagicMock()
    mock_redis.pipeline.return_value = pipe_mock
    limiter = JobSlotLimiter(mock_redis, default_limit=2, slot_ttl=600)

    limiter.reserve("user_123", "job-1")

    pipe_mock.sadd.assert_called_once_with("training:active:user_123", "job-1")
    pipe_mock.expire.assert_called_once_with("training:active:user_123", 600)
    pipe_mock.execute.assert_called_once()


def test_reserve_raises_when_limit_exceeded(mock_redis):
    mock_redis.scard.return_value = 2
    limiter = JobSlotLimiter(mock_redis, default_limit=2)

    with pytest.raises(TooManyTrainingJobs) as exc_info:
        limiter.reserve("user_123", "job-3")

    assert exc_info.value.status_code == 429
    assert "Maximum concurrent training jobs" in exc_info.value.message
    mock_redis.pipeline.assert_not_called()


def test_release_removes_job(mock_redis):
    limiter = JobSlotLimiter(mock_redis)

    limiter.release("user_123", "job-1")

    mock_redis.srem.assert_called_once_with("training:active:user_123", "job-1")


def test_slot_releases_on_exception(mock_redis):
    limiter = JobSlotLimiter(mock_redis)

    with pytest.raises(ValueError):
        with limiter.slot("user_123", "job-1"):
            raise ValueError("Test error")

    mock_redis.srem.assert_called_once()


def test_custom_limit_override(mock_redis):
    mock_redis.scard.return_value = 3
    limiter = JobSlotLimiter(mock_redis, default_limit=5)

    assert limiter.can_start_job("user_123", limit=3) is False
    assert limiter.can_start_job("user_123", limit=10) is True
