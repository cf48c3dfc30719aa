"""Listing snapshot and outcome schemas."""
from pydantic import Field
from typing import List, Literal, Optional
from datetime import datetime

from pricelab.schemas.base import CamelModel, ClosedModel


class ListingSnapshot(ClosedModel):
    """Feature snapshot pushed by the listing provider."""

    current_price: float = Field(..., gt=0)
    original_price: Optional[float] = Field(None, gt=0, description="Defaults to the first price seen")
    views: int = Field(0, ge=0)
    watchers: int = Field(0, ge=0)
    category_id: Optional[str] = None
    brand: Optional[str] = None
    status: Literal["active", "ended", "sold", "draft"] = "active"
    competitor_prices: List[float] = Field(default_factory=list)


class ListingSnapshotResponse(CamelModel):
    listing_id: str
    current_price: float
    price_changed: bool


class RecordOutcomeRequest(ClosedModel):
    """Observed result of a price change, optionally tied to an experiment."""

    listing_id: str
    experiment_id: Optional[str] = None
    old_price: float = Field(..., gt=0)
    new_price: float = Field(..., gt=0)
    outcome_score: float = Field(..., ge=0, le=1)
    revenue_before: float = 0.0
    revenue_after: float = 0.0
    sales_velocity_change: Optional[float] = None
    applied_at: Optional[datetime] = None


class RecordOutcomeResponse(CamelModel):
    outcome_id: int
    strategy_id: Optional[str] = None
    learning_updated: bool
