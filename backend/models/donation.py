from pydantic import BaseModel, Field, ConfigDict, computed_field
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, DonationStatus, ErrorCode, OfferStep, RequestStatus

class DonationRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    donor_id: str
    request_id: str
    units: int = Field(gt=0)
    blood_type: Optional[BloodGroup] = None  # None when the donor's type could not be resolved
    status: DonationStatus = DonationStatus.OFFERED
    idempotency_key: Optional[str] = None
    offered_at: datetime
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonationOfferCreate(BaseModel):
    request_id: str
    units: int
    date: Optional[datetime] = None
    idempotency_key: Optional[str] = None

class StepOutcome(BaseModel):
    step: OfferStep
    ok: bool
    code: Optional[ErrorCode] = None
    message: str = ""

class RequestSnapshot(BaseModel):
    quantity: int
    status: RequestStatus

class OfferOutcome(BaseModel):
    """
    Result of a donation offer.

    ``donation_id`` is always accurate once returned: the record exists.
    Each best-effort step reports independently in ``steps``.
    """
    donation_id: str
    replayed: bool = False
    request: Optional[RequestSnapshot] = None
    steps: List[StepOutcome] = []

    @computed_field
    @property
    def warnings(self) -> List[StepOutcome]:
        return [s for s in self.steps if not s.ok]

    @computed_field
    @property
    def ok(self) -> bool:
        return not self.warnings

    def step(self, step: OfferStep) -> Optional[StepOutcome]:
        for s in self.steps:
            if s.step == step:
                return s
        return None
