from fastapi import APIRouter, Depends
from typing import Optional

from models import DonorResponse
from services import DonorDirectory, filter_donors, get_current_user_id
from routers.deps import get_directory

router = APIRouter(prefix="/donors", tags=["Donors"])

@router.get("/compatible")
async def get_compatible_donors(
    search: Optional[str] = None,
    current_user_id: str = Depends(get_current_user_id),
    directory: DonorDirectory = Depends(get_directory)
):
    result = await directory.find_compatible(current_user_id)
    donors = filter_donors(result.donors, search)
    return {
        "blood_type": result.recipient_blood_type.value if result.recipient_blood_type else None,
        "donors": [DonorResponse(**d.model_dump()).model_dump(mode="json") for d in donors],
        "total": len(result.donors),
        "warning": result.error,
    }
