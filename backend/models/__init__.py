from .enums import (
    UserRole, BloodGroup, Urgency, RequestStatus, DonationStatus,
    OfferStep, ErrorCode
)
from .user import UserProfile, DonorResponse
from .request import BloodRequest, BloodRequestCreate, OpenRequestView
from .donation import (
    DonationRecord, DonationOfferCreate, StepOutcome, RequestSnapshot, OfferOutcome
)
from .audit import AuditLog, AuditAction, AuditModule
from .serialization import to_document
from .stats import DashboardStats, MonthlyRequests
