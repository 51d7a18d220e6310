"""
Audit Log Models
One entry per donation offer or request status change.
"""
from pydantic import BaseModel, Field
from datetime import datetime, timezone
from typing import Optional
from enum import Enum
import uuid


class AuditAction(str, Enum):
    CREATE = "create"
    OFFER = "offer"
    COMPLETE = "complete"
    CANCEL = "cancel"


class AuditModule(str, Enum):
    DONATIONS = "donations"
    REQUESTS = "requests"


class AuditLog(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    user_id: Optional[str] = None  # caller identity as forwarded by the gateway

    action: AuditAction
    module: AuditModule
    record_id: Optional[str] = None
    record_type: Optional[str] = None  # "donation" or "blood_request"
    description: Optional[str] = None
    new_values: Optional[dict] = None

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    request_method: Optional[str] = None
    request_path: Optional[str] = None

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[dict] = None
