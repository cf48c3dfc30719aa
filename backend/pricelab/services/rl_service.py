"""Online RL endpoints: serve an action for a listing, learn from its reward."""
import random
from typing import Optional
from sqlalchemy.orm import Session

from pricelab.models.rl import RLStateRecord
from pricelab.schemas.rl import (
    GetActionRequest, GetActionResponse, RecordRewardRequest, MarketFeatures
)
from pricelab.services.exceptions import InvalidArgument, NotFound, internal_errors
from pricelab.services.listings import ListingStore
from pricelab.services.q_policy import QPolicy, SqlQValueRepository
from pricelab.services.state_encoder import hash_features, hash_state
from pricelab.middleware.logging import get_logger

logger = get_logger()


class RLService:
    """Serves pricing actions from the Q-table and records their rewards."""

    def __init__(self, db: Session, policy: Optional[QPolicy] = None, rng: Optional[random.Random] = None):
        self.db = db
        self.policy = policy or QPolicy(SqlQValueRepository(db), rng=rng)
        self.listings = ListingStore(db)

    def get_action(self, user_id, request: GetActionRequest) -> GetActionResponse:
        """
        Pick the next action for a listing and remember the state it was chosen in.

        Raises:
            InvalidArgument: The state was captured for another listing
            NotFound: Listing missing or not owned by the user
        """
        if request.current_state.listing_id != request.listing_id:
            raise InvalidArgument(
                "State belongs to a different listing",
                details={"listing_id": request.listing_id, "state_listing_id": request.current_state.listing_id}
            )

        self.listings.get_owned(user_id, request.listing_id)

        with internal_errors(logger, "rl_action_failed", listing_id=request.listing_id):
            decision = self.policy.get_action(request.current_state, request.exploration_mode)
            action = decision["action"]

            self.db.add(RLStateRecord(
                listing_id=request.listing_id,
                state_vector=request.current_state.features.model_dump(by_alias=True),
                action_taken=action.to_key(),
            ))
            self.db.commit()

        logger.info(
            "rl_action_selected",
            listing_id=request.listing_id,
            state_hash=decision["state_hash"],
            action_type=action.action_type,
            magnitude=round(action.magnitude, 4),
            explored=not decision["action_probabilities"]
        )

        return GetActionResponse(
            action=action,
            expected_reward=decision["expected_reward"],
            state_value=decision["state_value"],
            action_probabilities=decision["action_probabilities"],
        )

    def record_reward(self, user_id, request: RecordRewardRequest) -> bool:
        """
        Attach a reward to the most recent state served for the listing and,
        when the next state is known, update the Q-table.

        Raises:
            NotFound: Listing not owned by the user, or no state served for it yet
        """
        self.listings.get_owned(user_id, request.listing_id)

        last_state = self.db.query(RLStateRecord).filter(
            RLStateRecord.listing_id == request.listing_id
        ).order_by(RLStateRecord.created_at.desc(), RLStateRecord.id.desc()).first()

        if not last_state:
            raise NotFound(
                "No previous state found for listing",
                details={"listing_id": request.listing_id}
            )

        with internal_errors(logger, "rl_reward_failed", listing_id=request.listing_id):
            last_state.reward = request.reward.total
            if request.next_state is not None:
                last_state.next_state_vector = request.next_state.features.model_dump(by_alias=True)
            self.db.commit()

            new_q = None
            if request.next_state is not None:
                state_hash = hash_features(MarketFeatures.model_validate(last_state.state_vector))
                new_q = self.policy.update(
                    state_hash,
                    last_state.action_taken,
                    request.reward.total,
                    hash_state(request.next_state)
                )

        logger.info(
            "rl_reward_recorded",
            listing_id=request.listing_id,
            reward=request.reward.total,
            q_value=new_q
        )
        return True
