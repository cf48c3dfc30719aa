"""Recording realized pricing outcomes and feeding them back into bandit arms."""
from datetime import datetime
from sqlalchemy.orm import Session

from pricelab.models.experiment import BanditArm, Experiment, ExperimentAssignment
from pricelab.models.outcome import PricingOutcome
from pricelab.schemas.listings import RecordOutcomeRequest, RecordOutcomeResponse
from pricelab.services.bandit_stats import is_success
from pricelab.services.exceptions import NotFound, internal_errors
from pricelab.services.listings import ListingStore
from pricelab.middleware.logging import get_logger

logger = get_logger()


class OutcomeRecorder:
    """Stores outcomes and applies the Beta posterior update to the assigned arm."""

    def __init__(self, db: Session):
        self.db = db
        self.listings = ListingStore(db)

    def record(self, user_id, request: RecordOutcomeRequest) -> RecordOutcomeResponse:
        """
        Record an outcome for one of the user's listings.

        When the outcome belongs to an experiment, the listing's assigned
        strategy is attached to it and that strategy's arm is updated.

        Raises:
            NotFound: Listing or experiment missing or not owned by the user
        """
        self.listings.get_owned(user_id, request.listing_id)

        strategy_id = None
        if request.experiment_id:
            experiment = self.db.query(Experiment).filter(
                Experiment.id == request.experiment_id,
                Experiment.user_id == user_id
            ).first()
            if not experiment:
                raise NotFound("Experiment not found", details={"experiment_id": request.experiment_id})

            assignment = self.db.query(ExperimentAssignment).filter(
                ExperimentAssignment.experiment_id == request.experiment_id,
                ExperimentAssignment.listing_id == request.listing_id
            ).first()
            if assignment:
                strategy_id = assignment.strategy_id

        with internal_errors(logger, "outcome_record_failed", listing_id=request.listing_id):
            outcome = PricingOutcome(
                experiment_id=request.experiment_id,
                listing_id=request.listing_id,
                strategy_id=strategy_id,
                old_price=request.old_price,
                new_price=request.new_price,
                outcome_score=request.outcome_score,
                revenue_before=request.revenue_before,
                revenue_after=request.revenue_after,
                sales_velocity_change=request.sales_velocity_change,
                applied_at=request.applied_at or datetime.utcnow(),
            )
            self.db.add(outcome)

            learning_updated = False
            if strategy_id:
                learning_updated = self.update_arm(request.experiment_id, strategy_id, request.outcome_score)

            self.db.commit()
            self.db.refresh(outcome)

        logger.info(
            "outcome_recorded",
            listing_id=request.listing_id,
            experiment_id=request.experiment_id,
            strategy_id=strategy_id,
            outcome_score=request.outcome_score,
            learning_updated=learning_updated
        )

        return RecordOutcomeResponse(
            outcome_id=outcome.id,
            strategy_id=strategy_id,
            learning_updated=learning_updated,
        )

    def update_arm(self, experiment_id: str, arm_id: str, score: float) -> bool:
        """
        Count one success or failure against an arm, in the database.

        Caller commits.

        Returns:
            False when the experiment has no arm for the strategy
        """
        success = is_success(score)
        updated = self.db.query(BanditArm).filter(
            BanditArm.experiment_id == experiment_id,
            BanditArm.arm_id == arm_id
        ).update(
            {
                BanditArm.alpha: BanditArm.alpha + (1 if success else 0),
                BanditArm.beta: BanditArm.beta + (0 if success else 1),
                BanditArm.visit_count: BanditArm.visit_count + 1,
                BanditArm.total_reward: BanditArm.total_reward + score,
                BanditArm.avg_reward: (BanditArm.total_reward + score) / (BanditArm.visit_count + 1),
                BanditArm.updated_at: datetime.utcnow(),
            },
            synchronize_session=False
        )
        return bool(updated)
