from fastapi import APIRouter, Depends, Request

from database import get_db
from models import AuditAction, BloodRequestCreate
from services import RequestCatalog, audit_request_created, audit_request_status, get_current_user_id
from routers.deps import get_catalog

router = APIRouter(prefix="/requests", tags=["Blood Requests"])

@router.post("")
async def create_blood_request(
    request_data: BloodRequestCreate,
    request: Request,
    current_user_id: str = Depends(get_current_user_id),
    catalog: RequestCatalog = Depends(get_catalog),
    db=Depends(get_db)
):
    blood_request = await catalog.create_request(current_user_id, request_data)
    await audit_request_created(db, current_user_id, blood_request, request=request)
    return {"status": "success", "id": blood_request.id}

@router.get("/open")
async def get_open_requests(
    current_user_id: str = Depends(get_current_user_id),
    catalog: RequestCatalog = Depends(get_catalog)
):
    views = await catalog.list_open()
    return [v.model_dump(mode="json") for v in views]

@router.get("/{request_id}")
async def get_blood_request(
    request_id: str,
    current_user_id: str = Depends(get_current_user_id),
    catalog: RequestCatalog = Depends(get_catalog)
):
    blood_request = await catalog.get_request(request_id)
    return blood_request.model_dump(mode="json", exclude={"applied_donation_ids"})

@router.put("/{request_id}/cancel")
async def cancel_request(
    request_id: str,
    request: Request,
    current_user_id: str = Depends(get_current_user_id),
    catalog: RequestCatalog = Depends(get_catalog),
    db=Depends(get_db)
):
    blood_request = await catalog.cancel_request(request_id, current_user_id)
    await audit_request_status(db, AuditAction.CANCEL, current_user_id, blood_request, request=request)
    return {"status": "success", "request_status": blood_request.status.value}

@router.put("/{request_id}/complete")
async def complete_request(
    request_id: str,
    request: Request,
    current_user_id: str = Depends(get_current_user_id),
    catalog: RequestCatalog = Depends(get_catalog),
    db=Depends(get_db)
):
    blood_request = await catalog.complete_request(request_id, current_user_id)
    await audit_request_status(db, AuditAction.COMPLETE, current_user_id, blood_request, request=request)
    return {"status": "success", "request_status": blood_request.status.value}
