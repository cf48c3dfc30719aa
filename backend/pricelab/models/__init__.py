"""Database models."""
from pricelab.models.user import User
from pricelab.models.experiment import (
    Experiment, ExperimentType, ExperimentStatus, BanditArm, ExperimentAssignment
)
from pricelab.models.listing import Listing, PriceHistory
from pricelab.models.outcome import PricingOutcome
from pricelab.models.rl import RLStateRecord, QValue

__all__ = [
    "User", "Experiment", "ExperimentType", "ExperimentStatus", "BanditArm",
    "ExperimentAssignment", "Listing", "PriceHistory", "PricingOutcome",
    "RLStateRecord", "QValue",
]
