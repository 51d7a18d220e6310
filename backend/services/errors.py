"""
Error types raised by the matching and fulfillment services.
Each carries a stable ``code`` and a human-readable message.
"""
from contextlib import asynccontextmanager
from typing import Optional

from pymongo.errors import PyMongoError

from models.enums import ErrorCode


class BloodMatchError(Exception):
    code: ErrorCode = ErrorCode.TRANSIENT_STORE_FAILURE
    status_code: int = 500

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code


class InvalidBloodType(BloodMatchError):
    code = ErrorCode.INVALID_BLOOD_TYPE
    status_code = 400


class InvalidUnits(BloodMatchError):
    code = ErrorCode.INVALID_UNITS
    status_code = 400


class DonorNotFound(BloodMatchError):
    code = ErrorCode.DONOR_NOT_FOUND
    status_code = 404


class RequestNotFound(BloodMatchError):
    code = ErrorCode.REQUEST_NOT_FOUND
    status_code = 404


class RequestNotOpen(BloodMatchError):
    code = ErrorCode.REQUEST_NOT_OPEN
    status_code = 409


class ProfileUnavailable(BloodMatchError):
    code = ErrorCode.PROFILE_UNAVAILABLE
    status_code = 404


class InvalidStatusTransition(BloodMatchError):
    code = ErrorCode.INVALID_STATUS_TRANSITION
    status_code = 409


class ConcurrentConflict(BloodMatchError):
    code = ErrorCode.CONCURRENT_CONFLICT
    status_code = 409


class TransientStoreFailure(BloodMatchError):
    code = ErrorCode.TRANSIENT_STORE_FAILURE
    status_code = 503


class IdempotencyKeyReused(BloodMatchError):
    code = ErrorCode.IDEMPOTENCY_KEY_REUSED
    status_code = 409


class MalformedRequest(BloodMatchError):
    code = ErrorCode.MALFORMED_REQUEST
    status_code = 500


@asynccontextmanager
async def store_errors(action: str):
    """Translate driver errors raised inside the block into TransientStoreFailure."""
    try:
        yield
    except PyMongoError as e:
        raise TransientStoreFailure(f"Could not {action}: the database is unavailable. Please try again.") from e
