from fastapi import APIRouter

from services import compatible_donor_types, compatible_recipient_types, parse_blood_type

router = APIRouter(prefix="/compatibility", tags=["Compatibility"])

@router.get("/{blood_type}")
async def get_compatibility(blood_type: str):
    recipient_type = parse_blood_type(blood_type)
    return {
        "blood_type": recipient_type.value,
        "compatible_donor_types": sorted(t.value for t in compatible_donor_types(recipient_type)),
        "can_donate_to": sorted(t.value for t in compatible_recipient_types(recipient_type)),
    }
