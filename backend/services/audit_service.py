"""
Audit Logging Service
Append-only trail of donation offers and request lifecycle changes.
"""
import logging
from typing import Optional

from fastapi import Request
from pymongo.errors import PyMongoError

from models import AuditLog, AuditAction, AuditModule, BloodRequest, OfferOutcome, OfferStep

logger = logging.getLogger(__name__)

# Contact details belong to the identity subsystem and never enter the trail
REDACTED_FIELDS = {"email", "phone_number", "password", "token", "secret", "api_key"}


def _request_info(request: Optional[Request]) -> dict:
    if request is None:
        return {}
    return {
        "ip_address": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent", "")[:500],
        "request_method": request.method,
        "request_path": str(request.url.path),
    }


def _redact(data: Optional[dict]) -> Optional[dict]:
    if not data:
        return None
    cleaned = {}
    for key, value in data.items():
        if key.lower() in REDACTED_FIELDS:
            cleaned[key] = "[REDACTED]"
        elif isinstance(value, dict):
            cleaned[key] = _redact(value)
        else:
            cleaned[key] = value
    return cleaned


class AuditService:
    """Writes audit entries into ``audit_logs``."""

    @staticmethod
    async def log(
        db,
        action: AuditAction,
        module: AuditModule,
        user_id: Optional[str] = None,
        record_id: Optional[str] = None,
        record_type: Optional[str] = None,
        description: Optional[str] = None,
        new_values: Optional[dict] = None,
        request: Optional[Request] = None,
        metadata: Optional[dict] = None
    ) -> Optional[str]:
        """
        Store one audit entry.

        The audited action has already happened by the time this runs, so a
        failed write is logged and ``None`` returned instead of raising.
        """
        entry = AuditLog(
            user_id=user_id,
            action=action,
            module=module,
            record_id=record_id,
            record_type=record_type,
            description=description,
            new_values=_redact(new_values),
            metadata=metadata,
            **_request_info(request),
        )
        try:
            await db.audit_logs.insert_one(entry.model_dump(mode="json"))
        except PyMongoError:
            logger.exception("Failed to write audit log for %s %s", action.value, record_id)
            return None
        return entry.id


async def audit_offer(db, donor_id: str, request_id: str, units: int,
                      outcome: OfferOutcome, request: Optional[Request] = None) -> Optional[str]:
    """Record a donation offer, noting which best-effort steps degraded."""
    request_step = outcome.step(OfferStep.REQUEST_UPDATE)
    return await AuditService.log(
        db, AuditAction.OFFER, AuditModule.DONATIONS, donor_id,
        record_id=outcome.donation_id,
        record_type="donation",
        description=f"Offered {units} unit(s) to request {request_id}",
        new_values={"request_id": request_id, "units": units},
        request=request,
        metadata={
            "request_applied": bool(request_step and request_step.ok),
            "warnings": [w.code.value for w in outcome.warnings if w.code],
        },
    )


async def audit_request_created(db, recipient_id: str, blood_request: BloodRequest,
                                request: Optional[Request] = None) -> Optional[str]:
    return await AuditService.log(
        db, AuditAction.CREATE, AuditModule.REQUESTS, recipient_id,
        record_id=blood_request.id,
        record_type="blood_request",
        description=f"Requested {blood_request.quantity} unit(s) of {blood_request.blood_type.value}",
        new_values=blood_request.model_dump(
            mode="json", include={"blood_type", "quantity", "urgency", "reason", "required_date"}
        ),
        request=request,
    )


async def audit_request_status(db, action: AuditAction, recipient_id: str, blood_request: BloodRequest,
                               request: Optional[Request] = None) -> Optional[str]:
    return await AuditService.log(
        db, action, AuditModule.REQUESTS, recipient_id,
        record_id=blood_request.id,
        record_type="blood_request",
        description=f"Request {blood_request.id} marked {blood_request.status.value}",
        new_values={"status": blood_request.status.value},
        request=request,
    )
