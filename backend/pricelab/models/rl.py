"""Reinforcement learning state and Q-table models."""
from sqlalchemy import Column, String, Text, Integer, Float, DateTime, UniqueConstraint
from datetime import datetime

from pricelab.database import Base, JSONType


class RLStateRecord(Base):
    """State observed for a listing, the action served for it, and the reward once known."""

    __tablename__ = "rl_states"

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(String(100), nullable=False, index=True)
    state_vector = Column(JSONType, nullable=False)
    action_taken = Column(Text, nullable=False)  # Canonical action key
    reward = Column(Float)
    next_state_vector = Column(JSONType)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<RLStateRecord {self.listing_id} reward={self.reward}>"


class QValue(Base):
    """Q(state, action) entry. Rows are only ever inserted or updated."""

    __tablename__ = "q_values"
    __table_args__ = (UniqueConstraint("state_hash", "action", name="uq_q_value"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    state_hash = Column(String(32), nullable=False, index=True)
    action = Column(Text, nullable=False)
    q_value = Column(Float, nullable=False)
    visit_count = Column(Integer, nullable=False, default=1)
    last_updated = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<QValue {self.state_hash} {self.action} q={self.q_value:.4f}>"
