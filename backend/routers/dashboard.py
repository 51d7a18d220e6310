from fastapi import APIRouter, Depends

from services import StatsService, get_current_user_id
from routers.deps import get_stats

router = APIRouter(tags=["Dashboard"])

@router.get("/dashboard/stats")
async def get_dashboard_stats(
    current_user_id: str = Depends(get_current_user_id),
    stats: StatsService = Depends(get_stats)
):
    result = await stats.dashboard_stats()
    return result.model_dump()

@router.get("/")
async def root():
    return {"status": "healthy", "service": "Blood Donation Matching API"}
