"""Pydantic schemas for request/response validation."""
from pricelab.schemas.experiments import (
    PricingStrategy, CreateExperimentRequest, CreateExperimentResponse,
    StartExperimentResponse, ExperimentStatusResponse, ExperimentResults
)
from pricelab.schemas.rl import (
    MarketFeatures, RLState, PricingAction, RLReward, GetActionRequest,
    GetActionResponse, RecordRewardRequest, TrainRequest, TrainResult
)
from pricelab.schemas.listings import ListingSnapshot, RecordOutcomeRequest

__all__ = [
    "PricingStrategy", "CreateExperimentRequest", "CreateExperimentResponse",
    "StartExperimentResponse", "ExperimentStatusResponse", "ExperimentResults",
    "MarketFeatures", "RLState", "PricingAction", "RLReward", "GetActionRequest",
    "GetActionResponse", "RecordRewardRequest", "TrainRequest", "TrainResult",
    "ListingSnapshot", "RecordOutcomeRequest",
]
