from .errors import (
    BloodMatchError, InvalidBloodType, InvalidUnits, DonorNotFound,
    RequestNotFound, RequestNotOpen, ProfileUnavailable, InvalidStatusTransition,
    ConcurrentConflict, TransientStoreFailure, IdempotencyKeyReused, MalformedRequest
)
from .compatibility import (
    compatible_donor_types, compatible_recipient_types, is_compatible, parse_blood_type
)
from .live_query import LiveQueryHub, Subscription
from .donor_directory import DonorDirectory, DirectoryResult, donor_query, filter_donors
from .fulfillment_ledger import FulfillmentLedger
from .request_catalog import RequestCatalog, RequestBoard, UNKNOWN_RECIPIENT
from .audit_service import AuditService, audit_offer, audit_request_created, audit_request_status
from .auth import get_current_user_id
from .stats import StatsService
