"""
Statistics
Aggregate read model behind the dashboard: user and request totals, donor
blood-type distribution, and requests per month with how many were fulfilled.
"""
import logging

from models import DashboardStats, MonthlyRequests, RequestStatus, UserRole
from services.errors import store_errors

logger = logging.getLogger(__name__)

# A request counts as fulfilled once donors covered it
FULFILLED_STATUSES = [RequestStatus.MATCHED.value, RequestStatus.COMPLETED.value]


class StatsService:
    def __init__(self, db):
        self.db = db

    async def dashboard_stats(self) -> DashboardStats:
        async with store_errors("load statistics"):
            total_donors = await self.db.users.count_documents({"role": UserRole.DONOR.value})
            total_recipients = await self.db.users.count_documents({"role": UserRole.RECIPIENT.value})
            total_requests = await self.db.blood_requests.count_documents({})
            fulfilled = await self.db.blood_requests.count_documents(
                {"status": {"$in": FULFILLED_STATUSES}}
            )

            blood_type_pipeline = [
                {"$match": {"role": UserRole.DONOR.value}},
                {"$group": {"_id": "$blood_type", "count": {"$sum": 1}}}
            ]
            by_blood_type = await self.db.users.aggregate(blood_type_pipeline).to_list(None)

            monthly_pipeline = [
                {"$match": {"created_at": {"$type": "date"}}},
                {"$group": {
                    "_id": {"$dateToString": {"format": "%Y-%m", "date": "$created_at"}},
                    "requests": {"$sum": 1},
                    "fulfilled": {"$sum": {"$cond": [{"$in": ["$status", FULFILLED_STATUSES]}, 1, 0]}}
                }},
                {"$sort": {"_id": 1}}
            ]
            monthly = await self.db.blood_requests.aggregate(monthly_pipeline).to_list(None)

        success_rate = round(fulfilled * 100 / total_requests) if total_requests else 0
        logger.debug("Stats: %d donors, %d requests, %d%% fulfilled",
                     total_donors, total_requests, success_rate)

        return DashboardStats(
            total_donors=total_donors,
            total_recipients=total_recipients,
            total_requests=total_requests,
            fulfilled_requests=fulfilled,
            success_rate=success_rate,
            donors_by_blood_type={item["_id"]: item["count"] for item in by_blood_type if item["_id"]},
            monthly_requests=[
                MonthlyRequests(month=item["_id"], requests=item["requests"], fulfilled=item["fulfilled"])
                for item in monthly
            ],
        )
