"""
Request Catalog
Read model of open blood requests, plus the recipient-side lifecycle actions.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional

from models import (
    BloodRequest, BloodRequestCreate, OfferOutcome, OfferStep, OpenRequestView,
    RequestStatus, to_document
)
from services.errors import (
    InvalidStatusTransition, RequestNotFound, TransientStoreFailure, store_errors
)
from services.fulfillment_ledger import FulfillmentLedger
from services.live_query import ErrorListener, LiveQueryHub, Subscription

logger = logging.getLogger(__name__)

UNKNOWN_RECIPIENT = "Unknown"
OPEN_SORT = [("created_at", -1)]

# Status a recipient may move a request to -> statuses it may move from.
# Only FulfillmentLedger moves a request to matched.
ALLOWED_TRANSITIONS = {
    RequestStatus.COMPLETED: [RequestStatus.MATCHED],
    RequestStatus.CANCELLED: [RequestStatus.OPEN, RequestStatus.MATCHED],
}


class RequestCatalog:
    def __init__(self, db, hub: Optional[LiveQueryHub] = None):
        self.db = db
        self.hub = hub

    async def resolve_recipient_names(self, recipient_ids: Iterable[str]) -> Dict[str, str]:
        """Display names by recipient id; unresolvable ids map to "Unknown"."""
        ids = sorted(set(i for i in recipient_ids if i))
        names = {i: UNKNOWN_RECIPIENT for i in ids}
        if not ids:
            return names
        try:
            async with store_errors("resolve recipient names"):
                users = await self.db.users.find(
                    {"id": {"$in": ids}}, {"_id": 0, "id": 1, "name": 1}
                ).to_list(None)
        except TransientStoreFailure as e:
            logger.warning("Recipient name lookup failed, showing %s: %s", UNKNOWN_RECIPIENT, e)
            return names
        for user in users:
            if user.get("name"):
                names[user["id"]] = user["name"]
        return names

    async def annotate(self, docs: List[dict]) -> List[OpenRequestView]:
        names = await self.resolve_recipient_names(d.get("recipient_id") for d in docs)
        views = []
        for doc in docs:
            try:
                views.append(OpenRequestView(
                    **doc,
                    recipient_name=names.get(doc.get("recipient_id"), UNKNOWN_RECIPIENT),
                ))
            except ValueError:
                logger.warning("Skipping malformed blood request %s", doc.get("id"))
        return views

    async def list_open(self) -> List[OpenRequestView]:
        async with store_errors("load open requests"):
            docs = await self.db.blood_requests.find(
                {"status": RequestStatus.OPEN.value}, {"_id": 0}
            ).sort(OPEN_SORT).to_list(None)
        return await self.annotate(docs)

    def subscribe_open(
        self,
        listener: Callable[[List[OpenRequestView]], object],
        on_error: Optional[ErrorListener] = None,
    ) -> Subscription:
        if self.hub is None:
            raise RuntimeError("RequestCatalog was created without a LiveQueryHub")
        return self.hub.subscribe(
            "blood_requests",
            {"status": RequestStatus.OPEN.value},
            listener,
            on_error=on_error,
            sort=OPEN_SORT,
            transform=self.annotate,
        )

    async def get_request(self, request_id: str) -> BloodRequest:
        async with store_errors("load the blood request"):
            doc = await self.db.blood_requests.find_one({"id": request_id}, {"_id": 0})
        if not doc:
            raise RequestNotFound(f"Request {request_id} not found")
        return BloodRequest(**doc)

    async def create_request(self, recipient_id: str, payload: BloodRequestCreate) -> BloodRequest:
        request = BloodRequest(recipient_id=recipient_id, **payload.model_dump())
        async with store_errors("create the blood request"):
            await self.db.blood_requests.insert_one(to_document(request))
        logger.info("Created request %s for %s: %d unit(s) of %s",
                    request.id, recipient_id, request.quantity, request.blood_type.value)
        if self.hub is not None:
            self.hub.notify("blood_requests")
        return request

    async def transition(self, request_id: str, recipient_id: str, target: RequestStatus) -> BloodRequest:
        """Move a recipient's own request to ``target`` if its current status allows it."""
        allowed_from = ALLOWED_TRANSITIONS.get(target)
        if not allowed_from:
            raise InvalidStatusTransition(f"Requests cannot be moved to {target.value}")

        async with store_errors("update the blood request"):
            result = await self.db.blood_requests.update_one(
                {
                    "id": request_id,
                    "recipient_id": recipient_id,
                    "status": {"$in": [s.value for s in allowed_from]},
                },
                {
                    "$set": {"status": target.value, "updated_at": datetime.now(timezone.utc)},
                    "$inc": {"version": 1},
                },
            )
        if result.modified_count == 0:
            async with store_errors("load the blood request"):
                doc = await self.db.blood_requests.find_one({"id": request_id}, {"_id": 0})
            if not doc or doc.get("recipient_id") != recipient_id:
                raise RequestNotFound(f"Request {request_id} not found")
            raise InvalidStatusTransition(
                f"Request {request_id} is {doc['status']} and cannot be marked {target.value}"
            )

        logger.info("Request %s -> %s by %s", request_id, target.value, recipient_id)
        if self.hub is not None:
            self.hub.notify("blood_requests")
        return await self.get_request(request_id)

    async def cancel_request(self, request_id: str, recipient_id: str) -> BloodRequest:
        return await self.transition(request_id, recipient_id, RequestStatus.CANCELLED)

    async def complete_request(self, request_id: str, recipient_id: str) -> BloodRequest:
        return await self.transition(request_id, recipient_id, RequestStatus.COMPLETED)


class RequestBoard:
    """
    Client-side list of open requests.

    ``apply_snapshot`` installs the authoritative list from the live query,
    replacing anything local. ``offer`` lowers the shown quantity right away
    so the donor sees the effect before the next snapshot arrives; replays
    of an already recorded offer leave it unchanged.
    """

    def __init__(self, catalog: RequestCatalog, ledger: FulfillmentLedger):
        self.catalog = catalog
        self.ledger = ledger
        self.requests: List[OpenRequestView] = []
        self.subscription: Optional[Subscription] = None
        self.last_error: Optional[str] = None

    def apply_snapshot(self, views: List[OpenRequestView]) -> None:
        self.requests = [v.model_copy() for v in views]

    def on_error(self, error) -> None:
        self.last_error = error.message

    def attach(self) -> Subscription:
        self.subscription = self.catalog.subscribe_open(self.apply_snapshot, self.on_error)
        return self.subscription

    def detach(self) -> None:
        if self.subscription is not None:
            self.subscription.dispose()
            self.subscription = None

    def get(self, request_id: str) -> Optional[OpenRequestView]:
        for view in self.requests:
            if view.id == request_id:
                return view
        return None

    async def offer(self, donor_id: str, request_id: str, units: int,
                    at: Optional[datetime] = None,
                    idempotency_key: Optional[str] = None) -> OfferOutcome:
        outcome = await self.ledger.offer(donor_id, request_id, units, at, idempotency_key)
        view = self.get(request_id)
        applied = outcome.step(OfferStep.REQUEST_UPDATE)
        # A replayed offer was already subtracted the first time it was recorded
        if view is not None and not outcome.replayed and applied is not None and applied.ok:
            view.quantity = max(0, view.quantity - units)
        return outcome
