from pydantic import BaseModel
from typing import Dict, List

class MonthlyRequests(BaseModel):
    month: str  # "YYYY-MM" of created_at, UTC
    requests: int
    fulfilled: int

class DashboardStats(BaseModel):
    total_donors: int
    total_recipients: int
    total_requests: int
    fulfilled_requests: int
    success_rate: int  # percent of requests matched or completed
    donors_by_blood_type: Dict[str, int]
    monthly_requests: List[MonthlyRequests]
