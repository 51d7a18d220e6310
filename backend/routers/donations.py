from fastapi import APIRouter, Depends, Request
from datetime import datetime, timezone

from database import get_db
from models import DonationOfferCreate
from services import FulfillmentLedger, audit_offer, get_current_user_id
from routers.deps import get_ledger

router = APIRouter(prefix="/donations", tags=["Donations"])

@router.post("/offer")
async def offer_donation(
    offer: DonationOfferCreate,
    request: Request,
    current_user_id: str = Depends(get_current_user_id),
    ledger: FulfillmentLedger = Depends(get_ledger),
    db=Depends(get_db)
):
    outcome = await ledger.offer(
        donor_id=current_user_id,
        request_id=offer.request_id,
        units=offer.units,
        at=offer.date or datetime.now(timezone.utc),
        idempotency_key=offer.idempotency_key,
    )

    # Replays were audited when first recorded
    if not outcome.replayed:
        await audit_offer(db, current_user_id, offer.request_id, offer.units, outcome, request=request)

    return {
        "status": "success",
        "message": "Offer recorded" if outcome.ok else "Offer recorded with warnings",
        **outcome.model_dump(mode="json"),
    }

@router.get("/mine")
async def get_my_donations(
    limit: int = 100,
    current_user_id: str = Depends(get_current_user_id),
    ledger: FulfillmentLedger = Depends(get_ledger)
):
    donations = await ledger.donations_for_donor(current_user_id, limit=limit)
    return [d.model_dump(mode="json") for d in donations]
