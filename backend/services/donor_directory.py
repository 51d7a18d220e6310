"""
Donor Directory
Finds available donors whose blood type is compatible with a recipient.
"""
import logging
from typing import Callable, List, Optional, Union

from pydantic import BaseModel

from models import BloodGroup, UserProfile, UserRole
from services.compatibility import compatible_donor_types, parse_blood_type
from services.errors import BloodMatchError, InvalidBloodType, ProfileUnavailable, store_errors
from services.live_query import ErrorListener, LiveQueryHub, Subscription, maybe_await

logger = logging.getLogger(__name__)

DONOR_SORT = [("id", 1)]


class DirectoryResult(BaseModel):
    recipient_blood_type: Optional[BloodGroup] = None
    donors: List[UserProfile] = []
    error: Optional[str] = None


def donor_query(recipient_type: Union[BloodGroup, str], exclude_id: Optional[str] = None) -> dict:
    """Store filter for available donors compatible with ``recipient_type``."""
    compatible = sorted(t.value for t in compatible_donor_types(recipient_type))
    query = {
        "role": UserRole.DONOR.value,
        "is_available": True,
        "blood_type": {"$in": compatible},
    }
    if exclude_id:
        query["id"] = {"$ne": exclude_id}
    return query


def to_profiles(docs: List[dict], exclude_id: Optional[str] = None) -> List[UserProfile]:
    profiles = []
    for doc in docs:
        if exclude_id and doc.get("id") == exclude_id:
            continue
        try:
            profiles.append(UserProfile(**doc))
        except ValueError:
            logger.warning("Skipping malformed donor profile %s", doc.get("id"))
    return profiles


def filter_donors(donors: List[UserProfile], term: Optional[str]) -> List[UserProfile]:
    """Case-insensitive substring search over name, blood type and college."""
    if not term or not term.strip():
        return list(donors)
    needle = term.strip().lower()

    def matches(donor: UserProfile) -> bool:
        fields = [donor.name, donor.blood_type.value if donor.blood_type else None, donor.college]
        return any(f and needle in f.lower() for f in fields)

    return [d for d in donors if matches(d)]


class DonorDirectory:
    def __init__(self, db, hub: Optional[LiveQueryHub] = None):
        self.db = db
        self.hub = hub

    async def recipient_blood_type(self, recipient_id: str) -> BloodGroup:
        """The blood type donors are matched against; raises ProfileUnavailable."""
        async with store_errors("load your profile"):
            doc = await self.db.users.find_one({"id": recipient_id}, {"_id": 0, "blood_type": 1})
        if not doc:
            raise ProfileUnavailable(f"Profile {recipient_id} could not be found")
        try:
            return parse_blood_type(doc.get("blood_type"))
        except InvalidBloodType:
            raise ProfileUnavailable("Your profile has no valid blood type set")

    async def list_compatible(self, recipient_type: Union[BloodGroup, str],
                              exclude_id: Optional[str] = None) -> List[UserProfile]:
        async with store_errors("load compatible donors"):
            docs = await self.db.users.find(
                donor_query(recipient_type, exclude_id), {"_id": 0}
            ).sort(DONOR_SORT).to_list(None)
        return to_profiles(docs, exclude_id)

    async def find_compatible(self, recipient_id: str) -> DirectoryResult:
        """
        One-shot snapshot of donors compatible with the recipient's profile.

        A missing or incomplete profile yields an empty result carrying the
        error message instead of raising.
        """
        try:
            blood_type = await self.recipient_blood_type(recipient_id)
        except ProfileUnavailable as e:
            logger.warning("Donor lookup for %s: %s", recipient_id, e.message)
            return DirectoryResult(error=e.message)
        donors = await self.list_compatible(blood_type, exclude_id=recipient_id)
        return DirectoryResult(recipient_blood_type=blood_type, donors=donors)

    def subscribe(
        self,
        recipient_type: Union[BloodGroup, str],
        exclude_id: Optional[str],
        listener: Callable[[List[UserProfile]], object],
        on_error: Optional[ErrorListener] = None,
    ) -> Subscription:
        """Live list of compatible, available donors other than ``exclude_id``."""
        if self.hub is None:
            raise RuntimeError("DonorDirectory was created without a LiveQueryHub")
        return self.hub.subscribe(
            "users",
            donor_query(recipient_type, exclude_id),
            listener,
            on_error=on_error,
            sort=DONOR_SORT,
            transform=lambda docs: to_profiles(docs, exclude_id),
        )

    async def subscribe_for_recipient(
        self,
        recipient_id: str,
        listener: Callable[[List[UserProfile]], object],
        on_error: Optional[ErrorListener] = None,
    ) -> Subscription:
        try:
            blood_type = await self.recipient_blood_type(recipient_id)
        except BloodMatchError as e:
            logger.warning("Cannot subscribe donors for %s: %s", recipient_id, e.message)
            await maybe_await(listener([]))
            if on_error is not None:
                await maybe_await(on_error(e))
            return Subscription.inert(listener)
        return self.subscribe(blood_type, recipient_id, listener, on_error)
