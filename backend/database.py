"""
MongoDB access.
Motor client, index setup and the one-time request schema migration.
"""
import logging
from datetime import datetime, timezone

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import settings

logger = logging.getLogger(__name__)

REQUEST_SCHEMA_VERSION = 1
LEGACY_IDEMPOTENCY_INDEX = "idempotency_key_1"

client = AsyncIOMotorClient(
    settings.mongo_url,
    serverSelectionTimeoutMS=settings.mongo_server_selection_timeout_ms,
    tz_aware=True,
)
db = client[settings.db_name]


def get_db() -> AsyncIOMotorDatabase:
    """FastAPI dependency returning the shared database handle."""
    return db


async def ensure_indexes(database) -> None:
    await database.users.create_index("id", unique=True)
    await database.users.create_index([("role", 1), ("is_available", 1), ("blood_type", 1)])
    await database.blood_requests.create_index("id", unique=True)
    await database.blood_requests.create_index([("status", 1), ("created_at", -1)])
    await database.donations.create_index("id", unique=True)
    await database.donations.create_index([("donor_id", 1), ("offered_at", -1)])
    # Idempotency keys are unique per donor, not globally
    if LEGACY_IDEMPOTENCY_INDEX in await database.donations.index_information():
        await database.donations.drop_index(LEGACY_IDEMPOTENCY_INDEX)
    await database.donations.create_index(
        [("donor_id", 1), ("idempotency_key", 1)],
        unique=True,
        partialFilterExpression={"idempotency_key": {"$type": "string"}},
    )


async def migrate_request_schema(database) -> int:
    """
    Bring legacy request documents onto the canonical schema.

    Older documents carry the remaining need as ``unitsNeeded`` and have no
    concurrency token. After this runs every request has ``quantity``,
    ``version``, ``matched_donors`` and ``applied_donation_ids``, so the rest
    of the code only ever reads the canonical fields.

    Returns the number of documents migrated.
    """
    migrated = 0
    legacy = await database.blood_requests.find(
        {"schema_version": {"$ne": REQUEST_SCHEMA_VERSION}},
        {"_id": 0},
    ).to_list(None)

    for doc in legacy:
        quantity = doc.get("quantity")
        if quantity is None:
            quantity = doc.get("unitsNeeded")
        try:
            quantity = 1 if quantity is None else int(quantity)
        except (TypeError, ValueError):
            logger.warning("Request %s has unreadable quantity %r, defaulting to 1", doc.get("id"), quantity)
            quantity = 1

        updates = {
            "quantity": max(0, quantity),
            "version": doc.get("version", 0),
            "matched_donors": doc.get("matched_donors", doc.get("matchedDonors", [])),
            "applied_donation_ids": doc.get("applied_donation_ids", []),
            "schema_version": REQUEST_SCHEMA_VERSION,
            "updated_at": datetime.now(timezone.utc),
        }
        await database.blood_requests.update_one(
            {"id": doc["id"]},
            {"$set": updates, "$unset": {"unitsNeeded": "", "matchedDonors": ""}},
        )
        migrated += 1

    if migrated:
        logger.info("Migrated %d blood request(s) to schema v%d", migrated, REQUEST_SCHEMA_VERSION)
    return migrated
