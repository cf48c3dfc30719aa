"""Listing snapshots, eligibility queries and RL state assembly."""
from datetime import datetime
from typing import List, Optional, Sequence, Tuple
from sqlalchemy.orm import Session

from pricelab.models.listing import Listing, PriceHistory
from pricelab.schemas.listings import ListingSnapshot
from pricelab.schemas.rl import MarketFeatures, RLState
from pricelab.services.exceptions import NotFound

# Placeholder market signals until a market-data feed is wired in
DEFAULT_MARKET_TREND = 0.02
DEFAULT_CATEGORY_DEMAND = 0.5

SEASONAL_FACTORS = {
    1: 0.9, 2: 0.95, 3: 1.0, 4: 1.05, 5: 1.1, 6: 1.05,
    7: 1.0, 8: 1.0, 9: 1.05, 10: 1.1, 11: 1.2, 12: 1.3,
}

PRICE_HISTORY_DEPTH = 10
COMPETITOR_SAMPLE_SIZE = 5


def get_seasonal_factor(month: int) -> float:
    return SEASONAL_FACTORS.get(month, 1.0)


class ListingStore:
    """Read/write access to the listing snapshots owned by users."""

    def __init__(self, db: Session):
        self.db = db

    def get_owned(self, user_id, listing_id: str) -> Listing:
        """
        Get a listing the user owns.

        Raises:
            NotFound: Listing missing or owned by someone else
        """
        listing = self.db.query(Listing).filter(
            Listing.id == listing_id,
            Listing.user_id == user_id
        ).first()

        if not listing:
            raise NotFound("Listing not found", details={"listing_id": listing_id})
        return listing

    def find_eligible_for_experiment(
        self,
        user_id,
        category_id: Optional[str] = None,
        brand_id: Optional[str] = None,
        limit: int = 1000
    ) -> List[str]:
        """Active listings of the user, most recent first."""
        query = self.db.query(Listing.id).filter(
            Listing.user_id == user_id,
            Listing.status == "active"
        )
        if category_id:
            query = query.filter(Listing.category_id == category_id)
        if brand_id:
            query = query.filter(Listing.brand == brand_id)

        rows = query.order_by(Listing.created_at.desc(), Listing.id).limit(limit).all()
        return [row.id for row in rows]

    def find_eligible_for_training(
        self,
        user_id,
        category_id: Optional[str] = None,
        listing_ids: Optional[Sequence[str]] = None,
        limit: int = 100
    ) -> List[str]:
        """Active listings of the user, most viewed (then most watched) first."""
        query = self.db.query(Listing.id).filter(
            Listing.user_id == user_id,
            Listing.status == "active"
        )
        if category_id:
            query = query.filter(Listing.category_id == category_id)
        if listing_ids:
            query = query.filter(Listing.id.in_(list(listing_ids)))

        rows = query.order_by(Listing.views.desc(), Listing.watchers.desc(), Listing.id).limit(limit).all()
        return [row.id for row in rows]

    def upsert_snapshot(self, user_id, listing_id: str, snapshot: ListingSnapshot) -> Tuple[Listing, bool]:
        """
        Store the latest snapshot for a listing.

        A changed current price is appended to the price history.

        Returns:
            (listing, price_changed)

        Raises:
            NotFound: The listing id belongs to another user
        """
        listing = self.db.query(Listing).filter(Listing.id == listing_id).first()
        if listing and listing.user_id != user_id:
            raise NotFound("Listing not found", details={"listing_id": listing_id})

        price_changed = False
        if not listing:
            listing = Listing(
                id=listing_id,
                user_id=user_id,
                original_price=snapshot.original_price or snapshot.current_price,
                current_price=snapshot.current_price,
            )
            self.db.add(listing)
            price_changed = True
        elif listing.current_price != snapshot.current_price:
            price_changed = True

        listing.current_price = snapshot.current_price
        if snapshot.original_price:
            listing.original_price = snapshot.original_price
        listing.views = snapshot.views
        listing.watchers = snapshot.watchers
        listing.status = snapshot.status
        listing.competitor_prices = list(snapshot.competitor_prices)
        if snapshot.category_id is not None:
            listing.category_id = snapshot.category_id
        if snapshot.brand is not None:
            listing.brand = snapshot.brand

        if price_changed:
            self.db.add(PriceHistory(listing_id=listing_id, new_price=snapshot.current_price))

        self.db.commit()
        self.db.refresh(listing)
        return listing, price_changed

    def current_state(self, listing_id: str, now: Optional[datetime] = None) -> RLState:
        """
        Assemble the RL state of a listing from its snapshot.

        Competitor prices come from the snapshot when the provider sent any,
        otherwise from the most viewed active listings in the same category.
        """
        now = now or datetime.utcnow()
        listing = self.db.query(Listing).filter(Listing.id == listing_id).first()
        if not listing:
            raise NotFound("Listing not found", details={"listing_id": listing_id})

        history = self.db.query(PriceHistory.new_price).filter(
            PriceHistory.listing_id == listing_id
        ).order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc()).limit(PRICE_HISTORY_DEPTH).all()

        competitor_prices = list(listing.competitor_prices or [])
        if not competitor_prices and listing.category_id:
            competitors = self.db.query(Listing.current_price).filter(
                Listing.category_id == listing.category_id,
                Listing.id != listing_id,
                Listing.status == "active"
            ).order_by(Listing.views.desc()).limit(COMPETITOR_SAMPLE_SIZE).all()
            competitor_prices = [row.current_price for row in competitors]

        days_since_listing = max(0, (now - listing.created_at).days)

        return RLState(
            listing_id=listing_id,
            features=MarketFeatures(
                current_price=listing.current_price,
                original_price=listing.original_price,
                price_history=[row.new_price for row in history],
                views=listing.views,
                watchers=listing.watchers,
                competitor_prices=competitor_prices,
                market_trend=DEFAULT_MARKET_TREND,
                seasonal_factor=get_seasonal_factor(now.month),
                days_since_listing=days_since_listing,
                category_demand=DEFAULT_CATEGORY_DEMAND,
            )
        )
