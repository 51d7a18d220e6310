from enum import Enum

class UserRole(str, Enum):
    DONOR = "donor"
    RECIPIENT = "recipient"

class BloodGroup(str, Enum):
    A_POSITIVE = "A+"
    A_NEGATIVE = "A-"
    B_POSITIVE = "B+"
    B_NEGATIVE = "B-"
    AB_POSITIVE = "AB+"
    AB_NEGATIVE = "AB-"
    O_POSITIVE = "O+"
    O_NEGATIVE = "O-"

class Urgency(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

class RequestStatus(str, Enum):
    OPEN = "open"
    MATCHED = "matched"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

class DonationStatus(str, Enum):
    OFFERED = "offered"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    REJECTED = "rejected"

class OfferStep(str, Enum):
    ENRICHMENT = "enrichment"
    REQUEST_UPDATE = "request_update"
    DONOR_STATS = "donor_stats"

class ErrorCode(str, Enum):
    INVALID_UNITS = "invalid_units"
    INVALID_BLOOD_TYPE = "invalid_blood_type"
    DONOR_NOT_FOUND = "donor_not_found"
    REQUEST_NOT_FOUND = "request_not_found"
    REQUEST_NOT_OPEN = "request_not_open"
    PROFILE_UNAVAILABLE = "profile_unavailable"
    INVALID_STATUS_TRANSITION = "invalid_status_transition"
    CONCURRENT_CONFLICT = "concurrent_conflict"
    TRANSIENT_STORE_FAILURE = "transient_store_failure"
    IDEMPOTENCY_KEY_REUSED = "idempotency_key_reused"
    MALFORMED_REQUEST = "malformed_request"
