"""Tests for the open-request read model and recipient lifecycle actions."""

from datetime import datetime, timezone

import pytest
from pymongo.errors import AutoReconnect

from models import BloodRequestCreate, RequestStatus
from services import (
    FulfillmentLedger, InvalidStatusTransition, RequestBoard, RequestCatalog,
    RequestNotFound, UNKNOWN_RECIPIENT
)
from tests.conftest import DONOR_ID, RECIPIENT_ID

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


@pytest.fixture
def catalog(fake_db, hub):
    return RequestCatalog(fake_db, hub)


@pytest.fixture
def ledger(fake_db, hub):
    return FulfillmentLedger(fake_db, hub=hub)


class TestListOpen:
    @pytest.mark.asyncio
    async def test_only_open_requests_newest_first(self, catalog, make_user, make_request):
        make_user(RECIPIENT_ID, role="recipient", name="Sita")
        older = make_request(quantity=2)
        make_request(status="matched")
        make_request(status="cancelled")
        newer = make_request(quantity=4)

        views = await catalog.list_open()

        assert [v.id for v in views] == [newer["id"], older["id"]]
        assert all(v.status == RequestStatus.OPEN for v in views)
        assert views[0].recipient_name == "Sita"

    @pytest.mark.asyncio
    async def test_unknown_recipient_falls_back(self, catalog, make_request):
        make_request(recipient_id="deleted-user")
        views = await catalog.list_open()
        assert views[0].recipient_name == UNKNOWN_RECIPIENT

    @pytest.mark.asyncio
    async def test_recipient_without_name_falls_back(self, catalog, make_user, make_request):
        make_user(RECIPIENT_ID, role="recipient", name="")
        make_request()
        views = await catalog.list_open()
        assert views[0].recipient_name == UNKNOWN_RECIPIENT

    @pytest.mark.asyncio
    async def test_name_lookup_failure_never_raises(self, catalog, fake_db, make_user, make_request):
        make_user(RECIPIENT_ID, role="recipient", name="Sita")
        make_request()
        fake_db.users.fail_next("find", AutoReconnect("down"))
        views = await catalog.list_open()
        assert views[0].recipient_name == UNKNOWN_RECIPIENT

    @pytest.mark.asyncio
    async def test_names_resolved_in_one_batch(self, catalog, fake_db, make_user, make_request):
        make_user(RECIPIENT_ID, role="recipient", name="Sita")
        for _ in range(3):
            make_request()
        await catalog.list_open()
        assert fake_db.users.calls["find"] == 1


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_create_request(self, catalog, fake_db):
        payload = BloodRequestCreate(blood_type="B+", quantity=2, urgency="critical", reason="Surgery")
        created = await catalog.create_request(RECIPIENT_ID, payload)

        stored = fake_db.blood_requests.get(created.id)
        assert stored["status"] == "open"
        assert stored["blood_type"] == "B+"
        assert stored["urgency"] == "critical"
        assert stored["quantity"] == 2
        assert stored["version"] == 0

    def test_create_requires_positive_quantity(self):
        with pytest.raises(ValueError):
            BloodRequestCreate(blood_type="B+", quantity=0)

    @pytest.mark.asyncio
    async def test_cancel_open_request(self, catalog, make_request):
        request = make_request()
        updated = await catalog.cancel_request(request["id"], RECIPIENT_ID)
        assert updated.status == RequestStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_complete_requires_matched(self, catalog, make_request):
        request = make_request()
        with pytest.raises(InvalidStatusTransition):
            await catalog.complete_request(request["id"], RECIPIENT_ID)

        matched = make_request(status="matched", quantity=0)
        updated = await catalog.complete_request(matched["id"], RECIPIENT_ID)
        assert updated.status == RequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_cancelled_is_terminal(self, catalog, make_request):
        request = make_request(status="cancelled")
        with pytest.raises(InvalidStatusTransition):
            await catalog.complete_request(request["id"], RECIPIENT_ID)
        with pytest.raises(InvalidStatusTransition):
            await catalog.cancel_request(request["id"], RECIPIENT_ID)

    @pytest.mark.asyncio
    async def test_completed_cannot_be_cancelled(self, catalog, make_request):
        request = make_request(status="completed", quantity=0)
        with pytest.raises(InvalidStatusTransition):
            await catalog.cancel_request(request["id"], RECIPIENT_ID)

    @pytest.mark.asyncio
    async def test_only_owner_can_change(self, catalog, make_request):
        request = make_request()
        with pytest.raises(RequestNotFound):
            await catalog.cancel_request(request["id"], "someone-else")

    @pytest.mark.asyncio
    async def test_cannot_move_back_to_open(self, catalog, make_request):
        request = make_request(status="matched")
        with pytest.raises(InvalidStatusTransition):
            await catalog.transition(request["id"], RECIPIENT_ID, RequestStatus.OPEN)

    @pytest.mark.asyncio
    async def test_recipient_cannot_mark_matched(self, catalog, fake_db, make_request):
        request = make_request()
        with pytest.raises(InvalidStatusTransition):
            await catalog.transition(request["id"], RECIPIENT_ID, RequestStatus.MATCHED)
        assert fake_db.blood_requests.get(request["id"])["status"] == "open"


class TestLiveOpenRequests:
    @pytest.mark.asyncio
    async def test_observers_see_fulfilment(self, catalog, ledger, hub, make_user, make_request):
        make_user(DONOR_ID, blood_type="O-")
        make_user(RECIPIENT_ID, role="recipient", name="Sita")
        request = make_request(quantity=2)
        snapshots = []
        catalog.subscribe_open(snapshots.append)
        await hub.refresh()
        assert snapshots[-1][0].quantity == 2
        assert snapshots[-1][0].recipient_name == "Sita"

        await ledger.offer(DONOR_ID, request["id"], 1, NOW)
        await hub.refresh()
        assert snapshots[-1][0].quantity == 1

        await ledger.offer(DONOR_ID, request["id"], 1, NOW)
        await hub.refresh()
        assert snapshots[-1] == []


class TestRequestBoard:
    @pytest.mark.asyncio
    async def test_optimistic_decrement_then_authoritative_overwrite(self, catalog, ledger, hub, make_user, make_request):
        make_user(DONOR_ID, blood_type="O-")
        request = make_request(quantity=5)
        board = RequestBoard(catalog, ledger)
        board.attach()
        await hub.refresh()
        assert board.get(request["id"]).quantity == 5

        outcome = await board.offer(DONOR_ID, request["id"], 2, NOW)
        assert outcome.ok
        assert board.get(request["id"]).quantity == 3

        # Another donor's offer lands elsewhere; the next push replaces local state
        await ledger.offer("other", request["id"], 1, NOW)
        await hub.refresh()
        assert board.get(request["id"]).quantity == 2
        board.detach()
        assert hub.active_queries == 0

    @pytest.mark.asyncio
    async def test_optimistic_decrement_clamps_at_zero(self, catalog, ledger, hub, make_user, make_request):
        make_user(DONOR_ID, blood_type="O-")
        request = make_request(quantity=1)
        board = RequestBoard(catalog, ledger)
        board.attach()
        await hub.refresh()

        await board.offer(DONOR_ID, request["id"], 4, NOW)
        assert board.get(request["id"]).quantity == 0

    @pytest.mark.asyncio
    async def test_push_overwrites_rather_than_merges(self, catalog, ledger, make_request):
        board = RequestBoard(catalog, ledger)
        request = make_request(quantity=5)
        board.apply_snapshot(await catalog.list_open())
        board.get(request["id"]).quantity = 1

        board.apply_snapshot(await catalog.list_open())
        assert board.get(request["id"]).quantity == 5

    @pytest.mark.asyncio
    async def test_failed_request_update_leaves_local_quantity(self, catalog, ledger, fake_db, make_request):
        board = RequestBoard(catalog, ledger)
        request = make_request(quantity=5)
        board.apply_snapshot(await catalog.list_open())
        fake_db.blood_requests.fail_next("update_one", AutoReconnect("down"))

        outcome = await board.offer(DONOR_ID, request["id"], 2, NOW)

        assert not outcome.ok
        assert board.get(request["id"]).quantity == 5

    @pytest.mark.asyncio
    async def test_replayed_offer_does_not_decrement_again(self, catalog, ledger, make_user, make_request):
        make_user(DONOR_ID, blood_type="O-")
        request = make_request(quantity=5)
        board = RequestBoard(catalog, ledger)

        await ledger.offer(DONOR_ID, request["id"], 2, NOW, idempotency_key="tap-1")
        board.apply_snapshot(await catalog.list_open())
        assert board.get(request["id"]).quantity == 3

        outcome = await board.offer(DONOR_ID, request["id"], 2, NOW, idempotency_key="tap-1")

        assert outcome.replayed
        assert board.get(request["id"]).quantity == 3
