"""Background training jobs.

A training request is accepted as a job and run outside the request.
Job records live in Redis so any worker can answer polls and cancellations:

    training:job:{job_id}          JSON record, expires after the configured TTL
    training:job:{job_id}:cancel   set when cancellation was requested

A job moves queued -> running -> completed | failed | cancelled | timed_out.
"""
import enum
import json
import random
import time
import uuid
import redis
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from sqlalchemy.orm import Session

from pricelab.schemas.rl import TrainRequest
from pricelab.services.episode_simulator import EpisodeSimulator
from pricelab.services.exceptions import (
    InvalidArgument, NotFound, FailedPrecondition, TrainingInterrupted
)
from pricelab.services.job_limiter import JobSlotLimiter
from pricelab.services.listings import ListingStore
from pricelab.services.q_policy import QPolicy, SqlQValueRepository
from pricelab.middleware.logging import get_logger

logger = get_logger()


class TrainingJobStatus(str, enum.Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


FINISHED_STATUSES = {
    TrainingJobStatus.COMPLETED,
    TrainingJobStatus.FAILED,
    TrainingJobStatus.CANCELLED,
    TrainingJobStatus.TIMED_OUT,
}


class TrainingJobStore:
    """Redis-backed training job records and cancellation flags."""

    def __init__(self, redis_client: redis.Redis, ttl: int = 86400):
        self.redis = redis_client
        self.ttl = ttl

    def _job_key(self, job_id: str) -> str:
        return f"training:job:{job_id}"

    def _cancel_key(self, job_id: str) -> str:
        return f"training:job:{job_id}:cancel"

    def create(self, job_id: str, user_id: str, episodes: int) -> Dict[str, Any]:
        now = datetime.utcnow().isoformat()
        job = {
            "job_id": job_id,
            "user_id": user_id,
            "status": TrainingJobStatus.QUEUED.value,
            "created_at": now,
            "updated_at": now,
            "episodes_requested": episodes,
            "episodes_completed": None,
            "result": None,
            "error": None,
        }
        self.redis.set(self._job_key(job_id), json.dumps(job), ex=self.ttl)
        return job

    def get(self, job_id: str) -> Optional[Dict[str, Any]]:
        raw = self.redis.get(self._job_key(job_id))
        if raw is None:
            return None
        return json.loads(raw)

    def update(self, job_id: str, **fields) -> Dict[str, Any]:
        """Merge fields into the record and bump updated_at."""
        job = self.get(job_id)
        if job is None:
            raise NotFound("Training job not found", details={"job_id": job_id})

        for key, value in fields.items():
            job[key] = value.value if isinstance(value, TrainingJobStatus) else value
        job["updated_at"] = datetime.utcnow().isoformat()

        self.redis.set(self._job_key(job_id), json.dumps(job), ex=self.ttl)
        return job

    def request_cancel(self, job_id: str) -> None:
        self.redis.set(self._cancel_key(job_id), "1", ex=self.ttl)

    def is_cancel_requested(self, job_id: str) -> bool:
        return bool(self.redis.exists(self._cancel_key(job_id)))


def get_owned_job(store: TrainingJobStore, user_id, job_id: str) -> Dict[str, Any]:
    """
    Raises:
        NotFound: Job unknown, expired, or started by another user
    """
    job = store.get(job_id)
    if not job or job.get("user_id") != str(user_id):
        raise NotFound("Training job not found", details={"job_id": job_id})
    return job


def submit_training_job(
    db: Session,
    store: TrainingJobStore,
    limiter: JobSlotLimiter,
    user_id,
    request: TrainRequest,
    listing_limit: int = 100,
    max_jobs: Optional[int] = None
) -> Tuple[Dict[str, Any], List[str]]:
    """
    Accept a training request as a queued job.

    Returns:
        (job record, eligible listing ids for the run)

    Raises:
        InvalidArgument: No eligible listings
        TooManyTrainingJobs: The user already has the maximum number of jobs running
    """
    listing_ids = ListingStore(db).find_eligible_for_training(
        user_id,
        category_id=request.category_id,
        listing_ids=request.listing_ids,
        limit=listing_limit
    )
    if not listing_ids:
        raise InvalidArgument(
            "No eligible listings for training",
            details={"category_id": request.category_id}
        )

    job_id = str(uuid.uuid4())
    limiter.reserve(str(user_id), job_id, max_jobs)
    try:
        job = store.create(job_id, str(user_id), request.episodes)
    except redis.RedisError:
        limiter.release(str(user_id), job_id)
        raise

    logger.info(
        "training_job_queued",
        job_id=job_id,
        user_id=str(user_id),
        episodes=request.episodes,
        listings=len(listing_ids)
    )
    return job, listing_ids


def cancel_training_job(store: TrainingJobStore, user_id, job_id: str) -> Dict[str, Any]:
    """
    Ask a queued or running job to stop before its next episode.

    Raises:
        NotFound: Job unknown or not owned by the user
        FailedPrecondition: Job already finished
    """
    job = get_owned_job(store, user_id, job_id)
    if TrainingJobStatus(job["status"]) in FINISHED_STATUSES:
        raise FailedPrecondition(
            f"Training job already {job['status']}",
            details={"job_id": job_id, "status": job["status"]}
        )

    store.request_cancel(job_id)
    logger.info("training_job_cancel_requested", job_id=job_id, user_id=str(user_id))
    return job


def run_training_job(
    job_id: str,
    user_id: str,
    request: TrainRequest,
    listing_ids: List[str],
    session_factory: Callable[[], Session],
    store: TrainingJobStore,
    limiter: JobSlotLimiter,
    timeout_seconds: float,
    rng: Optional[random.Random] = None,
    clock: Callable[[], float] = time.monotonic
) -> None:
    """
    Execute a queued job to completion, cancellation or timeout.

    Runs in a background thread with its own database session. Failures are
    recorded on the job rather than raised; the user's slot is always released.
    """
    log = logger.bind(job_id=job_id, user_id=user_id)
    deadline = clock() + timeout_seconds
    db = session_factory()

    def should_stop() -> Optional[str]:
        if store.is_cancel_requested(job_id):
            return TrainingJobStatus.CANCELLED.value
        if clock() > deadline:
            return TrainingJobStatus.TIMED_OUT.value
        return None

    with limiter.slot(user_id, job_id):
        try:
            store.update(job_id, status=TrainingJobStatus.RUNNING)
            log.info("training_job_started", episodes=request.episodes)

            policy = QPolicy(SqlQValueRepository(db), rng=rng)
            simulator = EpisodeSimulator(policy, ListingStore(db).current_state)
            result = simulator.train(
                listing_ids,
                request.episodes,
                learning_rate=request.learning_rate,
                discount_factor=request.discount_factor,
                exploration_rate=request.exploration_rate,
                should_stop=should_stop
            )

            store.update(
                job_id,
                status=TrainingJobStatus.COMPLETED,
                episodes_completed=result["episodes_completed"],
                result=result
            )
            log.info(
                "training_job_completed",
                episodes_completed=result["episodes_completed"],
                avg_reward=result["avg_reward"]
            )

        except TrainingInterrupted as e:
            store.update(job_id, status=e.reason, episodes_completed=e.episodes_completed)
            log.warning("training_job_stopped", reason=e.reason, episodes_completed=e.episodes_completed)

        except Exception as e:
            db.rollback()
            log.error("training_job_failed", error=str(e), error_type=type(e).__name__)
            store.update(job_id, status=TrainingJobStatus.FAILED, error=str(e))

        finally:
            db.close()
