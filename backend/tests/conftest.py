"""Pytest configuration and shared fixtures.

This module provides:
- an in-memory database double (see ``fakes.py``)
- a live query hub bound to it
- factories for users and blood requests
- an HTTP client for the FastAPI app with the database overridden
"""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from tests.fakes import FakeDatabase

RECIPIENT_ID = "recipient-1"
DONOR_ID = "donor-1"


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest_asyncio.fixture
async def hub(fake_db):
    """Live query hub that only polls when refreshed explicitly."""
    from services import LiveQueryHub

    live_hub = LiveQueryHub(fake_db, interval=3600)
    yield live_hub
    await live_hub.close()


@pytest.fixture
def make_user(fake_db):
    def _make_user(user_id=None, role="donor", blood_type="O+", is_available=True, **extra):
        doc = {
            "id": user_id or str(uuid.uuid4()),
            "name": extra.pop("name", f"User {user_id}"),
            "role": role,
            "blood_type": blood_type,
            "is_available": is_available,
            "total_donations": 0,
            "credited_donation_ids": [],
            "created_at": datetime.now(timezone.utc),
            "updated_at": datetime.now(timezone.utc),
            **extra,
        }
        fake_db.users.docs.append(doc)
        return doc

    return _make_user


@pytest.fixture
def make_request(fake_db):
    counter = {"n": 0}

    def _make_request(request_id=None, quantity=3, status="open", recipient_id=RECIPIENT_ID,
                      blood_type="A+", **extra):
        counter["n"] += 1
        doc = {
            "id": request_id or str(uuid.uuid4()),
            "recipient_id": recipient_id,
            "blood_type": blood_type,
            "quantity": quantity,
            "urgency": "high",
            "status": status,
            "matched_donors": [],
            "applied_donation_ids": [],
            "version": 0,
            "schema_version": 1,
            "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc) + timedelta(minutes=counter["n"]),
            "updated_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
            **extra,
        }
        fake_db.blood_requests.docs.append(doc)
        return doc

    return _make_request


@pytest_asyncio.fixture
async def client(fake_db, hub):
    """Async test client for the FastAPI app backed by the in-memory database."""
    from database import get_db
    from routers.deps import get_live_hub
    from server import app

    app.dependency_overrides[get_db] = lambda: fake_db
    app.dependency_overrides[get_live_hub] = lambda: hub

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


def auth(user_id: str) -> dict:
    return {"X-User-Id": user_id}
