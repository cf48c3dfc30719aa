"""Experiment lifecycle: creation, allocation, start, status and completion."""
import math
import random
import redis
import time
import uuid
from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pricelab.models.experiment import (
    Experiment, ExperimentType, ExperimentStatus, BanditArm, ExperimentAssignment
)
from pricelab.schemas.experiments import (
    CreateExperimentRequest, CreateExperimentResponse, StartExperimentResponse,
    AssignListingsResponse, ExperimentStatusResponse, ExperimentResults
)
from pricelab.services.arm_allocator import ArmAllocator
from pricelab.services.bandit_stats import snapshot_from_arm
from pricelab.services.events import OutcomePublisher, build_outcome_event
from pricelab.services.exceptions import (
    InvalidArgument, NotFound, FailedPrecondition, internal_errors
)
from pricelab.services.listings import ListingStore
from pricelab.services.significance import SignificanceEvaluator
from pricelab.middleware.logging import get_logger

logger = get_logger()

MIN_STRATEGIES = 2
MIN_ESTIMATED_DAYS = 7
ASSIGNMENT_ATTEMPTS = 2


def generate_experiment_id() -> str:
    return f"exp_{int(time.time() * 1000)}_{uuid.uuid4().hex[:9]}"


def estimate_duration(min_sample_size: int, max_duration_days: int, assigned_count: int) -> int:
    """
    Days needed to reach the sample size, assuming a week to cycle through
    all assigned listings; never under a week, never over the maximum.
    """
    per_day = max(1, assigned_count / 7)
    return min(max_duration_days, max(MIN_ESTIMATED_DAYS, math.ceil(min_sample_size / per_day)))


def compute_progress(
    status: ExperimentStatus,
    start_date: Optional[datetime],
    end_date: Optional[datetime],
    now: datetime
) -> float:
    """Percent of the scheduled run elapsed."""
    if status == ExperimentStatus.COMPLETED:
        return 100.0
    if status != ExperimentStatus.ACTIVE or not start_date or not end_date:
        return 0.0

    total = (end_date - start_date).total_seconds()
    if total <= 0:
        return 100.0
    elapsed = (now - start_date).total_seconds()
    return min(100.0, max(0.0, elapsed / total * 100))


class ExperimentManager:
    """Service for managing pricing experiments owned by a user."""

    def __init__(
        self,
        db: Session,
        allocator: Optional[ArmAllocator] = None,
        publisher: Optional[OutcomePublisher] = None,
        eligible_listing_limit: int = 1000
    ):
        self.db = db
        self.allocator = allocator or ArmAllocator(random.Random())
        self.publisher = publisher
        self.eligible_listing_limit = eligible_listing_limit
        self.listings = ListingStore(db)
        self.evaluator = SignificanceEvaluator(db)

    def create_experiment(self, user_id, request: CreateExperimentRequest) -> CreateExperimentResponse:
        """
        Create a draft experiment, its bandit arms and listing assignments.

        Everything is written in a single transaction.

        Raises:
            InvalidArgument: Fewer than two strategies, or duplicate strategy ids
        """
        if len(request.strategies) < MIN_STRATEGIES:
            raise InvalidArgument("At least 2 strategies required for experiment")

        strategy_ids = [s.id for s in request.strategies]
        if len(set(strategy_ids)) != len(strategy_ids):
            raise InvalidArgument("Strategy ids must be unique within an experiment")

        experiment_id = generate_experiment_id()

        with internal_errors(logger, "experiment_create_failed", experiment_id=experiment_id, user_id=user_id):
            try:
                experiment = Experiment(
                    id=experiment_id,
                    user_id=user_id,
                    name=request.name,
                    description=request.description,
                    experiment_type=ExperimentType(request.experiment_type),
                    status=ExperimentStatus.DRAFT,
                    category_id=request.category_id,
                    brand_id=request.brand_id,
                    strategies=[s.model_dump(by_alias=True, exclude_none=True) for s in request.strategies],
                    allocation_method=request.allocation_method,
                    success_metric=request.success_metric,
                    confidence_threshold=request.confidence_threshold,
                    min_sample_size=request.min_sample_size,
                    max_duration_days=request.max_duration_days,
                )
                self.db.add(experiment)

                # Every strategy starts with an uninformative Beta(1, 1) arm
                arms = []
                for strategy in request.strategies:
                    arm = BanditArm(
                        experiment_id=experiment_id,
                        arm_id=strategy.id,
                        strategy_config=strategy.model_dump(by_alias=True, exclude_none=True),
                        alpha=1.0,
                        beta=1.0,
                        visit_count=0,
                        total_reward=0.0,
                        avg_reward=0.0,
                    )
                    self.db.add(arm)
                    arms.append(arm)

                eligible = self.listings.find_eligible_for_experiment(
                    user_id,
                    category_id=request.category_id,
                    brand_id=request.brand_id,
                    limit=self.eligible_listing_limit
                )
                pairs = self.allocator.allocate(
                    self._dedupe(eligible),
                    strategy_ids,
                    request.allocation_method,
                    arms=[snapshot_from_arm(arm) for arm in arms]
                )
                for listing_id, strategy_id in pairs:
                    self.db.add(ExperimentAssignment(
                        experiment_id=experiment_id,
                        listing_id=listing_id,
                        strategy_id=strategy_id
                    ))

                self.db.commit()
            except Exception:
                self.db.rollback()
                raise

        assigned = len(pairs)
        logger.info(
            "experiment_created",
            experiment_id=experiment_id,
            user_id=str(user_id),
            allocation_method=request.allocation_method,
            strategies=len(strategy_ids),
            assigned_listings=assigned
        )

        return CreateExperimentResponse(
            experiment_id=experiment_id,
            status=ExperimentStatus.DRAFT.value,
            assigned_listings=assigned,
            estimated_duration=estimate_duration(request.min_sample_size, request.max_duration_days, assigned),
        )

    def start_experiment(self, user_id, experiment_id: str, now: Optional[datetime] = None) -> StartExperimentResponse:
        """
        Move a draft experiment to active.

        Raises:
            NotFound: Experiment missing or not owned by the user
            FailedPrecondition: Experiment is not a draft
        """
        now = now or datetime.utcnow()
        experiment = self._get_owned(user_id, experiment_id)

        if experiment.status != ExperimentStatus.DRAFT:
            raise FailedPrecondition(
                f"Experiment is {experiment.status.value}; only draft experiments can be started",
                details={"experiment_id": experiment_id, "status": experiment.status.value}
            )

        with internal_errors(logger, "experiment_start_failed", experiment_id=experiment_id):
            experiment.status = ExperimentStatus.ACTIVE
            experiment.start_date = now
            experiment.end_date = now + timedelta(days=experiment.max_duration_days)
            self.db.commit()

        logger.info("experiment_started", experiment_id=experiment_id, end_date=experiment.end_date.isoformat())

        return StartExperimentResponse(
            success=True,
            message=f"Experiment started successfully. Will run until {experiment.end_date.strftime('%a %b %d %Y')}",
        )

    def assign_listings(self, user_id, experiment_id: str) -> AssignListingsResponse:
        """
        Allocate eligible listings that are not yet part of the experiment.

        A listing assigned concurrently by another request is treated as
        already assigned; conflicts are never reported to the caller.

        Raises:
            NotFound: Experiment missing or not owned by the user
            FailedPrecondition: Experiment already completed
        """
        experiment = self._get_owned(user_id, experiment_id)
        if experiment.status == ExperimentStatus.COMPLETED:
            raise FailedPrecondition(
                "Cannot assign listings to a completed experiment",
                details={"experiment_id": experiment_id}
            )

        strategy_ids = [s["id"] for s in experiment.strategies]
        eligible = self.listings.find_eligible_for_experiment(
            user_id,
            category_id=experiment.category_id,
            brand_id=experiment.brand_id,
            limit=self.eligible_listing_limit
        )

        newly_assigned = 0
        with internal_errors(logger, "experiment_assign_failed", experiment_id=experiment_id):
            for attempt in range(ASSIGNMENT_ATTEMPTS):
                existing = self._assigned_listing_ids(experiment_id)
                pending = [lid for lid in self._dedupe(eligible) if lid not in existing]
                if not pending:
                    break

                arms = [snapshot_from_arm(arm) for arm in experiment.arms]
                pairs = self.allocator.allocate(
                    pending,
                    strategy_ids,
                    experiment.allocation_method,
                    arms=arms,
                    start_index=len(existing)
                )
                try:
                    for listing_id, strategy_id in pairs:
                        self.db.add(ExperimentAssignment(
                            experiment_id=experiment_id,
                            listing_id=listing_id,
                            strategy_id=strategy_id
                        ))
                    self.db.commit()
                    newly_assigned = len(pairs)
                    break
                except IntegrityError:
                    # Another request assigned some of these listings first
                    self.db.rollback()
                    logger.info(
                        "experiment_assignment_conflict",
                        experiment_id=experiment_id,
                        attempt=attempt + 1
                    )

        total = len(self._assigned_listing_ids(experiment_id))
        logger.info(
            "experiment_listings_assigned",
            experiment_id=experiment_id,
            newly_assigned=newly_assigned,
            assigned_listings=total
        )
        return AssignListingsResponse(
            experiment_id=experiment_id,
            newly_assigned=newly_assigned,
            assigned_listings=total,
        )

    def get_experiment_status(self, user_id, experiment_id: str, now: Optional[datetime] = None) -> ExperimentStatusResponse:
        """
        Raises:
            NotFound: Experiment missing or not owned by the user
        """
        experiment = self._get_owned(user_id, experiment_id)
        with internal_errors(logger, "experiment_status_failed", experiment_id=experiment_id):
            return self._build_status(experiment, now or datetime.utcnow())

    def list_experiments(self, user_id, now: Optional[datetime] = None) -> List[ExperimentStatusResponse]:
        """Status of every experiment the user owns, newest first."""
        now = now or datetime.utcnow()
        with internal_errors(logger, "experiment_list_failed", user_id=user_id):
            experiments = self.db.query(Experiment).filter(
                Experiment.user_id == user_id
            ).order_by(Experiment.created_at.desc()).all()
            return [self._build_status(experiment, now) for experiment in experiments]

    def complete_expired_experiments(self, now: Optional[datetime] = None) -> int:
        """
        Complete every active experiment whose end date has passed.

        Each experiment is evaluated, committed and announced on its own.
        One that fails is rolled back, logged and left active for the next
        sweep; the rest still complete. A failed publish is logged and does
        not undo the transition.

        Returns:
            Number of experiments completed
        """
        now = now or datetime.utcnow()
        expired = self.db.query(Experiment).filter(
            Experiment.status == ExperimentStatus.ACTIVE,
            Experiment.end_date <= now
        ).all()

        completed = 0
        for experiment in expired:
            experiment_id = experiment.id
            try:
                results = self.evaluator.evaluate_experiment(experiment)
                experiment.status = ExperimentStatus.COMPLETED
                experiment.results = results
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                logger.error(
                    "experiment_complete_failed",
                    experiment_id=experiment_id,
                    error=str(e),
                    error_type=type(e).__name__
                )
                continue

            completed += 1
            logger.info("experiment_completed", experiment_id=experiment_id)
            self._publish_outcome(experiment, results, now)

        return completed

    def _publish_outcome(self, experiment: Experiment, results: Optional[dict], now: datetime) -> None:
        if not self.publisher:
            return
        try:
            self.publisher.publish(build_outcome_event(experiment, results, now))
        except redis.RedisError as e:
            logger.error(
                "outcome_event_publish_failed",
                experiment_id=experiment.id,
                error=str(e)
            )

    def _get_owned(self, user_id, experiment_id: str) -> Experiment:
        experiment = self.db.query(Experiment).filter(
            Experiment.id == experiment_id,
            Experiment.user_id == user_id
        ).first()

        if not experiment:
            raise NotFound("Experiment not found", details={"experiment_id": experiment_id})
        return experiment

    def _assigned_listing_ids(self, experiment_id: str) -> set:
        rows = self.db.query(ExperimentAssignment.listing_id).filter(
            ExperimentAssignment.experiment_id == experiment_id
        ).all()
        return {row.listing_id for row in rows}

    @staticmethod
    def _dedupe(listing_ids: List[str]) -> List[str]:
        return list(dict.fromkeys(listing_ids))

    def _build_status(self, experiment: Experiment, now: datetime) -> ExperimentStatusResponse:
        assigned = self.db.query(ExperimentAssignment).filter(
            ExperimentAssignment.experiment_id == experiment.id
        ).count()

        results = None
        if experiment.status in (ExperimentStatus.ACTIVE, ExperimentStatus.COMPLETED):
            raw = self.evaluator.evaluate_experiment(experiment)
            if raw is not None:
                results = ExperimentResults.model_validate(raw)

        return ExperimentStatusResponse(
            id=experiment.id,
            name=experiment.name,
            experiment_type=experiment.experiment_type.value,
            status=experiment.status.value,
            allocation_method=experiment.allocation_method,
            progress=compute_progress(experiment.status, experiment.start_date, experiment.end_date, now),
            results=results,
            assigned_listings=assigned,
            start_date=experiment.start_date,
            end_date=experiment.end_date,
        )
