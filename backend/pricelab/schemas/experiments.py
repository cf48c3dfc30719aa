"""Experiment request/response schemas."""
from pydantic import Field
from typing import Any, Dict, List, Literal, Optional
from datetime import datetime

from pricelab.schemas.base import CamelModel, ClosedModel

ExperimentTypeName = Literal["ab_test", "multi_armed_bandit", "reinforcement_learning"]
AllocationMethodName = Literal["equal", "epsilon_greedy", "thompson_sampling"]
SuccessMetricName = Literal["revenue", "profit", "sales_velocity", "conversion_rate"]


class StrategyConstraints(ClosedModel):
    """Hard bounds a strategy must respect when it moves a price."""

    min_price: Optional[float] = Field(None, gt=0)
    max_price: Optional[float] = Field(None, gt=0)
    max_change: Optional[float] = Field(None, ge=0, le=1, description="Max relative change per adjustment")


class StrategyConfig(ClosedModel):
    """How a strategy adjusts prices."""

    price_adjustment_type: Literal["percentage", "fixed", "dynamic"]
    adjustment_value: Optional[float] = None
    conditions: Optional[Dict[str, Any]] = None
    constraints: Optional[StrategyConstraints] = None


class PricingStrategy(ClosedModel):
    """One arm of an experiment."""

    id: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    config: StrategyConfig


class CreateExperimentRequest(CamelModel):
    """Request to create a pricing experiment."""

    name: str = Field(..., min_length=1, max_length=255)
    description: str = ""
    experiment_type: ExperimentTypeName
    category_id: Optional[str] = None
    brand_id: Optional[str] = None
    # Fewer than two strategies is rejected by the service as invalid_argument
    strategies: List[PricingStrategy]
    allocation_method: AllocationMethodName = "equal"
    success_metric: SuccessMetricName = "revenue"
    confidence_threshold: float = Field(0.95, gt=0, le=1)
    min_sample_size: int = Field(100, ge=1)
    max_duration_days: int = Field(30, ge=1, le=365)

    model_config = CamelModel.model_config | {
        "json_schema_extra": {
            "example": {
                "name": "Holiday discount depth",
                "experimentType": "multi_armed_bandit",
                "strategies": [
                    {"id": "pct5", "name": "5% off", "config": {"priceAdjustmentType": "percentage", "adjustmentValue": -5}},
                    {"id": "pct10", "name": "10% off", "config": {"priceAdjustmentType": "percentage", "adjustmentValue": -10}}
                ],
                "allocationMethod": "thompson_sampling"
            }
        }
    }


class CreateExperimentResponse(CamelModel):
    experiment_id: str
    status: str
    assigned_listings: int
    estimated_duration: int


class StartExperimentResponse(CamelModel):
    success: bool
    message: str


class AssignListingsResponse(CamelModel):
    experiment_id: str
    newly_assigned: int
    assigned_listings: int


class StrategyResult(CamelModel):
    """Aggregated outcomes for one strategy."""

    strategy_id: str
    sample_size: int
    outcome_count: int
    avg_score: float
    avg_revenue_impact: float
    avg_velocity_change: float
    score_stddev: float


class ExperimentResults(CamelModel):
    leading_strategy: str
    confidence: float
    significant_difference: bool
    effect_size: float
    metrics: Dict[str, float]
    strategies: List[StrategyResult] = []


class ExperimentStatusResponse(CamelModel):
    id: str
    name: str
    experiment_type: str
    status: str
    allocation_method: str
    progress: float
    results: Optional[ExperimentResults] = None
    assigned_listings: int
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class ExperimentListResponse(CamelModel):
    experiments: List[ExperimentStatusResponse]


class SweepResponse(CamelModel):
    completed: int
