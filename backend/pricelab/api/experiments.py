"""Pricing experiment endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
import redis

from pricelab.database import get_db
from pricelab.schemas.experiments import (
    CreateExperimentRequest, CreateExperimentResponse, StartExperimentResponse,
    AssignListingsResponse, ExperimentStatusResponse, ExperimentListResponse,
    SweepResponse
)
from pricelab.models.user import User
from pricelab.middleware.auth import get_current_user, verify_admin_key
from pricelab.services.events import OutcomePublisher
from pricelab.services.experiments import ExperimentManager
from pricelab.services.redis_client import get_redis
from pricelab.config import get_settings

router = APIRouter(prefix="/learning")
settings = get_settings()


def get_outcome_publisher(redis_client: redis.Redis = Depends(get_redis)) -> OutcomePublisher:
    return OutcomePublisher(redis_client, channel=settings.learning_events_channel)


def get_experiment_manager(
    db: Session = Depends(get_db),
    publisher: OutcomePublisher = Depends(get_outcome_publisher)
) -> ExperimentManager:
    return ExperimentManager(
        db,
        publisher=publisher,
        eligible_listing_limit=settings.eligible_listing_limit
    )


@router.post("/experiment/create", response_model=CreateExperimentResponse)
def create_experiment(
    request: CreateExperimentRequest,
    user: User = Depends(get_current_user),
    manager: ExperimentManager = Depends(get_experiment_manager)
):
    """
    Create a draft experiment and allocate the caller's eligible listings.

    - Needs at least two strategies with distinct ids
    - One bandit arm per strategy, starting at Beta(1, 1)
    """
    return manager.create_experiment(user.id, request)


@router.post("/experiment/{experiment_id}/start", response_model=StartExperimentResponse)
def start_experiment(
    experiment_id: str,
    user: User = Depends(get_current_user),
    manager: ExperimentManager = Depends(get_experiment_manager)
):
    """Move a draft experiment to active."""
    return manager.start_experiment(user.id, experiment_id)


@router.post("/experiment/{experiment_id}/assign", response_model=AssignListingsResponse)
def assign_listings(
    experiment_id: str,
    user: User = Depends(get_current_user),
    manager: ExperimentManager = Depends(get_experiment_manager)
):
    """Allocate eligible listings that joined after the experiment was created."""
    return manager.assign_listings(user.id, experiment_id)


@router.get("/experiment/{experiment_id}/status", response_model=ExperimentStatusResponse)
def get_experiment_status(
    experiment_id: str,
    user: User = Depends(get_current_user),
    manager: ExperimentManager = Depends(get_experiment_manager)
):
    return manager.get_experiment_status(user.id, experiment_id)


@router.get("/experiments", response_model=ExperimentListResponse)
def list_experiments(
    user: User = Depends(get_current_user),
    manager: ExperimentManager = Depends(get_experiment_manager)
):
    return ExperimentListResponse(experiments=manager.list_experiments(user.id))


@router.post(
    "/internal/check-experiments",
    response_model=SweepResponse,
    dependencies=[Depends(verify_admin_key)]
)
def check_experiments(manager: ExperimentManager = Depends(get_experiment_manager)):
    """
    Complete every active experiment past its end date.

    Runs on a timer from the app lifespan; exposed for external schedulers.
    """
    return SweepResponse(completed=manager.complete_expired_experiments())
