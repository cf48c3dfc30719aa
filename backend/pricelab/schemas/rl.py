"""Reinforcement learning request/response schemas."""
import json
from pydantic import Field
from typing import Dict, List, Literal, Optional
from datetime import datetime

from pricelab.schemas.base import CamelModel, ClosedModel

ActionTypeName = Literal["increase", "decrease", "maintain"]

MAX_ACTION_MAGNITUDE = 0.2


class MarketFeatures(ClosedModel):
    """Feature vector describing a listing at a point in time."""

    current_price: float = Field(..., gt=0)
    original_price: float = Field(..., gt=0)
    price_history: List[float] = Field(default_factory=list, max_length=10)
    views: int = Field(0, ge=0)
    watchers: int = Field(0, ge=0)
    competitor_prices: List[float] = Field(default_factory=list)
    market_trend: float = 0.0
    seasonal_factor: float = 1.0
    days_since_listing: int = Field(0, ge=0)
    category_demand: float = 0.5


class RLState(ClosedModel):
    listing_id: str
    features: MarketFeatures


class PricingAction(ClosedModel):
    """A price adjustment. ``magnitude`` is a fraction of the current price."""

    action_type: ActionTypeName
    magnitude: float = Field(0.0, ge=0, le=MAX_ACTION_MAGNITUDE)
    confidence: float = Field(0.5, ge=0, le=1)

    def to_key(self) -> str:
        """Canonical Q-table key. Distinct magnitudes are distinct keys."""
        return json.dumps(
            {"actionType": self.action_type, "magnitude": self.magnitude, "confidence": self.confidence},
            separators=(",", ":")
        )

    @classmethod
    def from_key(cls, key: str) -> "PricingAction":
        return cls.model_validate_json(key)


class RLReward(ClosedModel):
    immediate: float
    delayed: float
    total: float


class GetActionRequest(CamelModel):
    listing_id: str
    current_state: RLState
    exploration_mode: bool = False


class GetActionResponse(CamelModel):
    action: PricingAction
    expected_reward: float
    state_value: float
    action_probabilities: Dict[str, float]


class RecordRewardRequest(CamelModel):
    listing_id: str
    reward: RLReward
    next_state: Optional[RLState] = None


class RecordRewardResponse(CamelModel):
    success: bool


class TrainRequest(CamelModel):
    """Offline training run over simulated episodes."""

    episodes: int = Field(..., ge=1, le=10000)
    learning_rate: Optional[float] = Field(None, gt=0, le=1)
    discount_factor: Optional[float] = Field(None, ge=0, le=1)
    exploration_rate: Optional[float] = Field(None, ge=0, le=1)
    category_id: Optional[str] = None
    listing_ids: Optional[List[str]] = None


class ConvergenceMetrics(CamelModel):
    policy_loss: float = 0.0
    value_loss: float = 0.0
    entropy: float = 0.0


class ModelPerformance(CamelModel):
    success_rate: float
    avg_return: float
    exploration_rate: float


class TrainResult(CamelModel):
    episodes_completed: int
    avg_reward: float
    convergence_metrics: ConvergenceMetrics
    model_performance: ModelPerformance


class TrainingJobResponse(CamelModel):
    job_id: str
    status: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    episodes_requested: Optional[int] = None
    episodes_completed: Optional[int] = None
    result: Optional[TrainResult] = None
    error: Optional[str] = None
