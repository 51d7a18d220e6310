from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List
from datetime import datetime, timezone
import uuid
from .enums import UserRole, BloodGroup

class UserProfile(BaseModel):
    model_config = ConfigDict(extra="ignore")
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    college: Optional[str] = None
    role: UserRole
    blood_type: Optional[BloodGroup] = None
    is_available: bool = False
    total_donations: int = 0
    last_donation_date: Optional[datetime] = None
    credited_donation_ids: List[str] = []
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

class DonorResponse(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    phone_number: Optional[str] = None
    college: Optional[str] = None
    blood_type: Optional[BloodGroup] = None
    is_available: bool
    total_donations: int
    last_donation_date: Optional[datetime] = None
