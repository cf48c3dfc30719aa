"""Listing snapshot and outcome feedback endpoints."""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from pricelab.database import get_db
from pricelab.schemas.listings import (
    ListingSnapshot, ListingSnapshotResponse, RecordOutcomeRequest, RecordOutcomeResponse
)
from pricelab.models.user import User
from pricelab.middleware.auth import get_current_user
from pricelab.middleware.logging import get_logger
from pricelab.services.listings import ListingStore
from pricelab.services.outcomes import OutcomeRecorder

router = APIRouter(prefix="/learning")
logger = get_logger()


@router.put("/listings/{listing_id}/snapshot", response_model=ListingSnapshotResponse)
def upsert_listing_snapshot(
    listing_id: str,
    snapshot: ListingSnapshot,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Store the latest features of one of the caller's listings.

    A new current price is appended to the listing's price history.
    """
    listing, price_changed = ListingStore(db).upsert_snapshot(user.id, listing_id, snapshot)

    logger.info(
        "listing_snapshot_stored",
        user_id=str(user.id),
        listing_id=listing_id,
        price_changed=price_changed
    )

    return ListingSnapshotResponse(
        listing_id=listing.id,
        current_price=listing.current_price,
        price_changed=price_changed
    )


@router.post("/feedback/outcome", response_model=RecordOutcomeResponse)
def record_outcome(
    request: RecordOutcomeRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Record the observed result of a price change and update the strategy's arm."""
    return OutcomeRecorder(db).record(user.id, request)
