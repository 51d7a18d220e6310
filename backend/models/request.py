from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import BloodGroup, RequestStatus, Urgency

class BloodRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    recipient_id: str
    blood_type: BloodGroup
    quantity: int = Field(ge=0)
    urgency: Urgency = Urgency.MEDIUM
    status: RequestStatus = RequestStatus.OPEN
    matched_donors: List[str] = []
    applied_donation_ids: List[str] = []
    reason: Optional[str] = None
    required_date: Optional[datetime] = None
    version: int = 0
    schema_version: int = 1
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class BloodRequestCreate(BaseModel):
    blood_type: BloodGroup
    quantity: int = Field(ge=1)
    urgency: Urgency = Urgency.MEDIUM
    reason: Optional[str] = None
    required_date: Optional[datetime] = None

class OpenRequestView(BaseModel):
    """An open request as listed to donors, with the recipient's display name."""
    id: str
    recipient_id: str
    recipient_name: str
    blood_type: BloodGroup
    quantity: int
    urgency: Urgency
    status: RequestStatus
    matched_donors: List[str] = []
    reason: Optional[str] = None
    required_date: Optional[datetime] = None
    created_at: Optional[datetime] = None
