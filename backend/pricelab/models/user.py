"""User model."""
from sqlalchemy import Column, String, DateTime, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid

from pricelab.database import Base


class User(Base):
    """User with API key authentication. Owns experiments and listings."""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    api_key_hash = Column(String(255), unique=True, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    experiments = relationship("Experiment", back_populates="user", cascade="all, delete-orphan")
    listings = relationship("Listing", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User {self.id}>"
