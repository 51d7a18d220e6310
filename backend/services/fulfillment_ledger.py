"""
Fulfillment Ledger
Records donation offers and applies them to blood requests.

An offer is processed as:

1. resolve the donor's blood type from their profile (best-effort),
2. insert the DonationRecord (the durable fact that the offer happened),
3. subtract the offered units from the request with a compare-and-set on
   the request's ``version`` so concurrent offers never overwrite each
   other, marking it matched when nothing remains,
4. credit the donor's profile (best-effort).

Steps 1, 3 and 4 report into ``OfferOutcome.steps`` instead of raising;
nothing already written is rolled back. Steps 3 and 4 are idempotent per
donation id, so replaying an offer with the same idempotency key is safe.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from pymongo.errors import DuplicateKeyError

from config import settings
from models import (
    BloodGroup, DonationRecord, OfferOutcome, OfferStep,
    RequestSnapshot, RequestStatus, StepOutcome, to_document
)
from services.compatibility import parse_blood_type
from services.errors import (
    BloodMatchError, ConcurrentConflict, DonorNotFound, InvalidBloodType,
    IdempotencyKeyReused, InvalidUnits, MalformedRequest, RequestNotFound, RequestNotOpen,
    TransientStoreFailure, store_errors
)
from services.live_query import ErrorListener, LiveQueryHub, Subscription

logger = logging.getLogger(__name__)

HISTORY_SORT = [("offered_at", -1)]


def _failed(step: OfferStep, error: BloodMatchError) -> StepOutcome:
    return StepOutcome(step=step, ok=False, code=error.code, message=error.message)


def _check_replay(record: DonationRecord, request_id: str, units: int) -> None:
    if record.request_id != request_id or record.units != units:
        raise IdempotencyKeyReused(
            f"Idempotency key {record.idempotency_key!r} was already used for a different offer "
            f"({record.units} unit(s) to request {record.request_id})"
        )


def _request_state(doc: dict) -> Tuple[int, RequestStatus]:
    try:
        quantity = doc["quantity"]
        status = RequestStatus(doc["status"])
    except (KeyError, ValueError):
        raise MalformedRequest(
            f"Request {doc.get('id')} has no usable quantity or status; your offer was still recorded"
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 0:
        raise MalformedRequest(
            f"Request {doc.get('id')} has an invalid quantity {quantity!r}; your offer was still recorded"
        )
    return quantity, status


class FulfillmentLedger:
    def __init__(self, db, max_attempts: Optional[int] = None, hub: Optional[LiveQueryHub] = None):
        self.db = db
        self.max_attempts = max_attempts or settings.offer_max_attempts
        self.hub = hub

    async def offer(
        self,
        donor_id: str,
        request_id: str,
        units: int,
        at: Optional[datetime] = None,
        idempotency_key: Optional[str] = None,
    ) -> OfferOutcome:
        """
        Offer ``units`` of blood from ``donor_id`` against ``request_id``.

        Raises InvalidUnits before any write when ``units`` is not a positive
        integer, IdempotencyKeyReused when the donor already used
        ``idempotency_key`` for a different offer, and TransientStoreFailure when the donation record itself
        could not be stored. Every later problem is reported in the outcome.
        """
        if isinstance(units, bool) or not isinstance(units, int) or units <= 0:
            raise InvalidUnits(f"Units must be a positive whole number, got {units!r}")
        at = at or datetime.now(timezone.utc)

        record = await self._find_replay(donor_id, idempotency_key)
        replayed = record is not None
        if replayed:
            _check_replay(record, request_id, units)
            logger.info("Replaying donation %s for key %s", record.id, idempotency_key)
            steps = [StepOutcome(step=OfferStep.ENRICHMENT, ok=True, message="Reused recorded offer")]
        else:
            blood_type, enrichment = await self._resolve_blood_type(donor_id)
            steps = [enrichment]
            record = DonationRecord(
                donor_id=donor_id,
                request_id=request_id,
                units=units,
                blood_type=blood_type,
                idempotency_key=idempotency_key,
                offered_at=at,
            )
            record, replayed = await self._insert_record(record)

        snapshot, request_step = await self._apply_to_request(record)
        steps.append(request_step)
        steps.append(await self._credit_donor(record.donor_id, record.id, record.offered_at))

        outcome = OfferOutcome(donation_id=record.id, replayed=replayed, request=snapshot, steps=steps)
        for warning in outcome.warnings:
            logger.warning("Donation %s: %s step degraded (%s): %s",
                           record.id, warning.step.value, warning.code.value, warning.message)
        if self.hub is not None:
            self.hub.notify()
        return outcome

    async def _find_replay(self, donor_id: str, idempotency_key: Optional[str]) -> Optional[DonationRecord]:
        """The donor's earlier offer under ``idempotency_key``; keys are scoped per donor."""
        if not idempotency_key:
            return None
        async with store_errors("check for an earlier offer"):
            doc = await self.db.donations.find_one(
                {"donor_id": donor_id, "idempotency_key": idempotency_key}, {"_id": 0}
            )
        return DonationRecord(**doc) if doc else None

    async def _resolve_blood_type(self, donor_id: str) -> Tuple[Optional[BloodGroup], StepOutcome]:
        try:
            async with store_errors("look up the donor profile"):
                donor = await self.db.users.find_one({"id": donor_id}, {"_id": 0, "blood_type": 1})
            if not donor:
                raise DonorNotFound(f"Donor {donor_id} has no profile; blood type recorded as unknown")
            try:
                blood_type = parse_blood_type(donor.get("blood_type"))
            except InvalidBloodType:
                raise InvalidBloodType(
                    f"Donor {donor_id} has no valid blood type on file; recorded as unknown"
                )
        except BloodMatchError as e:
            return None, _failed(OfferStep.ENRICHMENT, e)
        return blood_type, StepOutcome(step=OfferStep.ENRICHMENT, ok=True)

    async def _insert_record(self, record: DonationRecord) -> Tuple[DonationRecord, bool]:
        try:
            async with store_errors("record your donation offer"):
                await self.db.donations.insert_one(to_document(record))
        except TransientStoreFailure as e:
            if isinstance(e.__cause__, DuplicateKeyError) and record.idempotency_key:
                # A concurrent retry with the same key won the insert
                existing = await self._find_replay(record.donor_id, record.idempotency_key)
                if existing is not None:
                    _check_replay(existing, record.request_id, record.units)
                    return existing, True
            raise
        logger.info("Created donation offer %s: donor=%s request=%s units=%d",
                    record.id, record.donor_id, record.request_id, record.units)
        return record, False

    async def _apply_to_request(self, record: DonationRecord) -> Tuple[Optional[RequestSnapshot], StepOutcome]:
        try:
            snapshot = await self._decrement_request(record)
        except BloodMatchError as e:
            return None, _failed(OfferStep.REQUEST_UPDATE, e)
        return snapshot, StepOutcome(step=OfferStep.REQUEST_UPDATE, ok=True)

    async def _decrement_request(self, record: DonationRecord) -> RequestSnapshot:
        """
        Read-modify-write of the request's quantity, retried on conflict.

        The write only lands if the request's ``version`` still matches what
        was read, so an offer that raced with another re-reads and recomputes
        from the fresh quantity.
        """
        request_id = record.request_id
        for attempt in range(1, self.max_attempts + 1):
            async with store_errors("update the blood request"):
                current = await self.db.blood_requests.find_one({"id": request_id}, {"_id": 0})
            if not current:
                raise RequestNotFound(
                    f"Request {request_id} was not found; your offer was still recorded"
                )

            quantity, status = _request_state(current)
            if record.id in current.get("applied_donation_ids", []):
                return RequestSnapshot(quantity=quantity, status=status)
            if status != RequestStatus.OPEN:
                raise RequestNotOpen(
                    f"Request {request_id} is {status.value} and accepts no more offers; "
                    f"your offer was still recorded",
                )

            new_quantity = max(0, quantity - record.units)
            new_status = RequestStatus.MATCHED if new_quantity == 0 else status
            version = current.get("version", 0)

            async with store_errors("update the blood request"):
                result = await self.db.blood_requests.update_one(
                    {"id": request_id, "version": version, "status": RequestStatus.OPEN.value},
                    {
                        "$set": {
                            "quantity": new_quantity,
                            "status": new_status.value,
                            "updated_at": datetime.now(timezone.utc),
                        },
                        "$inc": {"version": 1},
                        "$push": {"applied_donation_ids": record.id},
                        "$addToSet": {"matched_donors": record.donor_id},
                    },
                )
            if result.modified_count == 1:
                logger.info("Request %s: %d -> %d units (%s)",
                            request_id, quantity, new_quantity, new_status.value)
                return RequestSnapshot(quantity=new_quantity, status=new_status)

            logger.debug("Request %s changed under offer %s (attempt %d), retrying",
                         request_id, record.id, attempt)

        raise ConcurrentConflict(
            f"Request {request_id} is receiving many offers right now; "
            f"your offer was recorded, please retry to apply it"
        )

    async def _credit_donor(self, donor_id: str, donation_id: str, at: datetime) -> StepOutcome:
        try:
            async with store_errors("update your donor profile"):
                result = await self.db.users.update_one(
                    {"id": donor_id, "credited_donation_ids": {"$ne": donation_id}},
                    {
                        "$inc": {"total_donations": 1},
                        "$set": {
                            "last_donation_date": at,
                            "is_available": False,
                            "updated_at": datetime.now(timezone.utc),
                        },
                        "$push": {"credited_donation_ids": donation_id},
                    },
                )
                if result.matched_count == 0:
                    exists = await self.db.users.count_documents({"id": donor_id}, limit=1)
                    if not exists:
                        raise DonorNotFound(f"Donor {donor_id} not found; donation stats not updated")
        except BloodMatchError as e:
            return _failed(OfferStep.DONOR_STATS, e)
        return StepOutcome(step=OfferStep.DONOR_STATS, ok=True)

    async def donations_for_donor(self, donor_id: str, limit: int = 100) -> List[DonationRecord]:
        async with store_errors("load your donations"):
            docs = await self.db.donations.find(
                {"donor_id": donor_id}, {"_id": 0}
            ).sort(HISTORY_SORT).to_list(limit)
        return [DonationRecord(**doc) for doc in docs]

    def subscribe_donor_history(
        self,
        donor_id: str,
        listener: Callable[[List[DonationRecord]], object],
        on_error: Optional[ErrorListener] = None,
    ) -> Subscription:
        if self.hub is None:
            raise RuntimeError("FulfillmentLedger was created without a LiveQueryHub")
        return self.hub.subscribe(
            "donations",
            {"donor_id": donor_id},
            listener,
            on_error=on_error,
            sort=HISTORY_SORT,
            transform=lambda docs: [DonationRecord(**doc) for doc in docs],
        )
