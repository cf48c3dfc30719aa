"""Reinforcement learning endpoints.

Action selection and reward recording are synchronous. Training is accepted
as a background job that clients poll and may cancel.
"""
from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session
import redis

from pricelab.database import get_db, SessionLocal
from pricelab.schemas.rl import (
    GetActionRequest, GetActionResponse, RecordRewardRequest, RecordRewardResponse,
    TrainRequest, TrainingJobResponse
)
from pricelab.models.user import User
from pricelab.middleware.auth import get_current_user
from pricelab.services.job_limiter import JobSlotLimiter
from pricelab.services.redis_client import get_redis
from pricelab.services.rl_service import RLService
from pricelab.services.training_jobs import (
    TrainingJobStore, submit_training_job, run_training_job,
    get_owned_job, cancel_training_job
)
from pricelab.config import get_settings

router = APIRouter(prefix="/learning/rl")
settings = get_settings()


def get_job_store(redis_client: redis.Redis = Depends(get_redis)) -> TrainingJobStore:
    return TrainingJobStore(redis_client, ttl=settings.training_job_ttl_seconds)


def get_job_limiter(redis_client: redis.Redis = Depends(get_redis)) -> JobSlotLimiter:
    return JobSlotLimiter(
        redis_client,
        default_limit=settings.max_concurrent_training_jobs_per_user,
        slot_ttl=settings.training_job_timeout_seconds * 2
    )


def get_session_factory():
    """Sessions for work that outlives the request."""
    return SessionLocal


@router.post("/action", response_model=GetActionResponse)
def get_action(
    request: GetActionRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Next pricing action for a listing in the given state."""
    return RLService(db).get_action(user.id, request)


@router.post("/reward", response_model=RecordRewardResponse)
def record_reward(
    request: RecordRewardRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Reward for the last action served for a listing."""
    return RecordRewardResponse(success=RLService(db).record_reward(user.id, request))


@router.post("/train", response_model=TrainingJobResponse, status_code=202)
def train(
    request: TrainRequest,
    background_tasks: BackgroundTasks,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    store: TrainingJobStore = Depends(get_job_store),
    limiter: JobSlotLimiter = Depends(get_job_limiter),
    session_factory=Depends(get_session_factory)
):
    """
    Queue a training run on simulated episodes.

    - Rejects the request when the caller has no eligible listings
    - Returns 429 when the caller already has the maximum number of jobs running
    - Poll GET /learning/rl/train/{jobId} for the result
    """
    job, listing_ids = submit_training_job(
        db, store, limiter, user.id, request,
        listing_limit=settings.training_listing_limit
    )

    background_tasks.add_task(
        run_training_job,
        job["job_id"],
        str(user.id),
        request,
        listing_ids,
        session_factory,
        store,
        limiter,
        settings.training_job_timeout_seconds
    )

    return TrainingJobResponse.model_validate(job)


@router.get("/train/{job_id}", response_model=TrainingJobResponse)
def get_training_job(
    job_id: str,
    user: User = Depends(get_current_user),
    store: TrainingJobStore = Depends(get_job_store)
):
    return TrainingJobResponse.model_validate(get_owned_job(store, user.id, job_id))


@router.post("/train/{job_id}/cancel", response_model=TrainingJobResponse)
def cancel_training(
    job_id: str,
    user: User = Depends(get_current_user),
    store: TrainingJobStore = Depends(get_job_store)
):
    """Request cancellation. The job stops before its next episode."""
    return TrainingJobResponse.model_validate(cancel_training_job(store, user.id, job_id))
