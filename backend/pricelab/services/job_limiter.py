"""Concurrency limiting for training jobs.

Caps concurrent training jobs per user. Uses Redis for distributed
tracking across multiple workers.
"""
import redis
from typing import Optional
from contextlib import contextmanager

from pricelab.services.exceptions import TooManyTrainingJobs


class JobSlotLimiter:
    """Redis-based per-user training job slots."""

    def __init__(self, redis_client: redis.Redis, default_limit: int = 2, slot_ttl: int = 3600):
        self.redis = redis_client
        self.default_limit = default_limit
        # Slot sets expire on their own if a worker dies without releasing
        self.slot_ttl = slot_ttl

    def _get_slots_key(self, user_id: str) -> str:
        """Get Redis key for user's active training jobs set."""
        return f"training:active:{user_id}"

    def get_active_job_count(self, user_id: str) -> int:
        key = self._get_slots_key(user_id)
        return self.redis.scard(key) or 0

    def can_start_job(self, user_id: str, limit: Optional[int] = None) -> bool:
        max_jobs = limit or self.default_limit
        return self.get_active_job_count(user_id) < max_jobs

    def reserve(self, user_id: str, job_id: str, limit: Optional[int] = None) -> None:
        """
        Take a slot for a job.

        Raises:
            TooManyTrainingJobs: If the user already holds every slot
        """
        max_jobs = limit or self.default_limit

        if not self.can_start_job(user_id, max_jobs):
            raise TooManyTrainingJobs(
                f"Maximum concurrent training jobs ({max_jobs}) exceeded",
                details={"limit": max_jobs}
            )

        key = self._get_slots_key(user_id)
        pipe = self.redis.pipeline()
        pipe.sadd(key, job_id)
        pipe.expire(key, self.slot_ttl)
        pipe.execute()

    def release(self, user_id: str, job_id: str) -> None:
        """Give a job's slot back."""
        key = self._get_slots_key(user_id)
        self.redis.srem(key, job_id)

    @contextmanager
    def slot(self, user_id: str, job_id: str):
        """
        Hold a slot for the duration of a block.

        Usage:
            with limiter.slot(user_id, job_id):
                run_training()
            # Slot is released, even on failure
        """
        try:
            yield job_id
        finally:
            self.release(user_id, job_id)
