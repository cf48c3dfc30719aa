"""Realized pricing outcome model."""
from sqlalchemy import Column, String, Integer, Float, DateTime
from datetime import datetime

from pricelab.database import Base


class PricingOutcome(Base):
    """Observed effect of a price change on a listing."""

    __tablename__ = "pricing_outcomes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment_id = Column(String(64), index=True)
    listing_id = Column(String(100), nullable=False, index=True)
    strategy_id = Column(String(100))

    old_price = Column(Float, nullable=False)
    new_price = Column(Float, nullable=False)

    outcome_score = Column(Float)  # Normalized 0-1
    revenue_before = Column(Float, default=0.0)
    revenue_after = Column(Float, default=0.0)
    sales_velocity_change = Column(Float)

    applied_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<PricingOutcome {self.listing_id} score={self.outcome_score}>"
