"""Listing snapshot and price history models."""
from sqlalchemy import Column, String, Integer, Float, DateTime, ForeignKey, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime

from pricelab.database import Base, JSONType


class Listing(Base):
    """Latest feature snapshot of a marketplace listing, pushed by the listing provider."""

    __tablename__ = "listings"

    id = Column(String(100), primary_key=True)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    category_id = Column(String(100), index=True)
    brand = Column(String(100))
    status = Column(String(20), nullable=False, default="active", index=True)

    current_price = Column(Float, nullable=False)
    original_price = Column(Float, nullable=False)
    views = Column(Integer, nullable=False, default=0)
    watchers = Column(Integer, nullable=False, default=0)
    competitor_prices = Column(JSONType, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # Relationships
    user = relationship("User", back_populates="listings")
    price_history = relationship(
        "PriceHistory",
        back_populates="listing",
        cascade="all, delete-orphan",
        order_by="PriceHistory.created_at.desc()"
    )

    def __repr__(self):
        return f"<Listing {self.id} price={self.current_price}>"


class PriceHistory(Base):
    """A price the listing moved to."""

    __tablename__ = "price_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    listing_id = Column(String(100), ForeignKey("listings.id", ondelete="CASCADE"), nullable=False, index=True)
    new_price = Column(Float, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    listing = relationship("Listing", back_populates="price_history")

    def __repr__(self):
        return f"<PriceHistory {self.listing_id} {self.new_price}>"
