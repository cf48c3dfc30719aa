"""Pricing experiment, bandit arm and assignment models."""
from sqlalchemy import (
    Column, String, Text, Integer, Float, DateTime, ForeignKey, Uuid,
    UniqueConstraint, Enum as SQLEnum
)
from sqlalchemy.orm import relationship
from datetime import datetime
import enum

from pricelab.database import Base, JSONType


class ExperimentType(str, enum.Enum):
    """Experiment type enum."""
    AB_TEST = "ab_test"
    MULTI_ARMED_BANDIT = "multi_armed_bandit"
    REINFORCEMENT_LEARNING = "reinforcement_learning"


class ExperimentStatus(str, enum.Enum):
    """Experiment lifecycle. Only moves forward: draft -> active -> completed."""
    DRAFT = "draft"
    ACTIVE = "active"
    COMPLETED = "completed"


class Experiment(Base):
    """Pricing experiment comparing two or more strategies across listings."""

    __tablename__ = "pricing_experiments"

    id = Column(String(64), primary_key=True)  # exp_<millis>_<random>
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    experiment_type = Column(SQLEnum(ExperimentType), nullable=False)
    status = Column(SQLEnum(ExperimentStatus), nullable=False, default=ExperimentStatus.DRAFT, index=True)
    category_id = Column(String(100), index=True)
    brand_id = Column(String(100))

    strategies = Column(JSONType, nullable=False)  # [{"id": ..., "name": ..., "config": {...}}, ...]
    allocation_method = Column(String(50), nullable=False, default="equal")
    success_metric = Column(String(50), nullable=False, default="revenue")
    confidence_threshold = Column(Float, default=0.95)
    min_sample_size = Column(Integer, default=100)
    max_duration_days = Column(Integer, default=30)

    start_date = Column(DateTime)
    end_date = Column(DateTime)
    results = Column(JSONType)  # Snapshot written when the experiment completes

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="experiments")
    arms = relationship("BanditArm", back_populates="experiment", cascade="all, delete-orphan", order_by="BanditArm.id")
    assignments = relationship("ExperimentAssignment", back_populates="experiment", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<Experiment {self.id} status={self.status.value}>"


class BanditArm(Base):
    """Beta(alpha, beta) posterior and reward totals for one strategy of an experiment."""

    __tablename__ = "bandit_arms"
    __table_args__ = (UniqueConstraint("experiment_id", "arm_id", name="uq_bandit_arm"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment_id = Column(String(64), ForeignKey("pricing_experiments.id", ondelete="CASCADE"), nullable=False, index=True)
    arm_id = Column(String(100), nullable=False)
    strategy_config = Column(JSONType, nullable=False)

    # Thompson sampling parameters, start at the uninformative Beta(1, 1)
    alpha = Column(Float, nullable=False, default=1.0)
    beta = Column(Float, nullable=False, default=1.0)

    visit_count = Column(Integer, nullable=False, default=0)
    total_reward = Column(Float, nullable=False, default=0.0)
    avg_reward = Column(Float, nullable=False, default=0.0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    experiment = relationship("Experiment", back_populates="arms")

    def __repr__(self):
        return f"<BanditArm {self.experiment_id}/{self.arm_id} alpha={self.alpha} beta={self.beta}>"


class ExperimentAssignment(Base):
    """Listing-to-strategy assignment. Written once, never changed."""

    __tablename__ = "experiment_assignments"
    __table_args__ = (UniqueConstraint("experiment_id", "listing_id", name="uq_experiment_listing"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    experiment_id = Column(String(64), ForeignKey("pricing_experiments.id", ondelete="CASCADE"), nullable=False, index=True)
    listing_id = Column(String(100), nullable=False, index=True)
    strategy_id = Column(String(100), nullable=False, index=True)
    assigned_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    experiment = relationship("Experiment", back_populates="assignments")

    def __repr__(self):
        return f"<ExperimentAssignment {self.experiment_id}/{self.listing_id} -> {self.strategy_id}>"
