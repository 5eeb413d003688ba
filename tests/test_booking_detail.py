from datetime import datetime, timedelta, timezone

import pytest

from salon_admin.booking_detail import BUSY_MESSAGE, BookingDetailWorkflow, InvalidTransition, ViewState
from salon_admin.drafts import BookingDraft, ServiceDraft
from salon_admin.schemas import Booking

from .conftest import body, ok, store_error

ROW = {
    "id": 5,
    "startTime": "2025-10-01T09:00:00+00:00",
    "endTime": "2025-10-01T10:00:00+00:00",
    "numClients": 1,
    "status": "confirmed",
    "totalPrice": 60,
    "notes": "",
    "serviceIds": [],
}


@pytest.fixture
def view(store):
    return BookingDetailWorkflow(store, 5, tz=timezone.utc)


async def loaded(view, stub, *rows):
    stub.on("GET", "bookings", *[ok([r]) for r in (rows or (ROW,))])
    await view.load()
    assert view.state == ViewState.LOADED
    return view


# ---- load ----

async def test_load_success(view, stub):
    await loaded(view, stub)
    assert view.booking.id == 5
    assert view.error is None


async def test_load_not_found(view, stub):
    stub.on("GET", "bookings", ok([]))

    assert await view.load() is None
    assert view.state == ViewState.ERROR
    assert view.not_found


async def test_load_failure(view, stub):
    stub.on("GET", "bookings", store_error(500))

    await view.load()

    assert view.state == ViewState.ERROR
    assert not view.not_found
    assert view.error == "Booking could not be loaded"


async def test_response_after_close_is_discarded(view, stub):
    def close_then_answer(request):
        view.close()
        return ok([ROW])

    stub.on("GET", "bookings", close_then_answer)

    assert await view.load() is None
    assert view.booking is None
    assert view.state == ViewState.LOADING


async def test_stale_response_is_discarded(view, stub):
    newer = {**ROW, "notes": "newer"}

    def overtaken(request):
        # a second load was started while this one was in flight
        view._fetch_seq += 1
        return ok([ROW])

    stub.on("GET", "bookings", overtaken)

    assert await view.load() is None
    assert view.booking is None

    stub._routes.clear()
    stub.on("GET", "bookings", ok([newer]))
    await view.load()
    assert view.booking.notes == "newer"


# ---- edit ----

async def test_edit_only_from_loaded(view):
    with pytest.raises(InvalidTransition):
        view.begin_edit()


async def test_invalid_edit_is_not_sent(view, stub):
    await loaded(view, stub)
    draft = view.begin_edit()
    draft.end_time = draft.start_time - timedelta(minutes=30)

    result = await view.submit_edit()

    assert not result.ok
    assert [e.field for e in result.field_errors] == ["endTime"]
    assert view.state == ViewState.EDITING
    assert stub.calls("PATCH") == []


async def test_unchanged_edit_is_not_sent(view, stub):
    await loaded(view, stub)
    view.begin_edit()

    result = await view.submit_edit()

    assert result.ok
    assert result.message == "No changes to save"
    assert view.state == ViewState.LOADED
    assert stub.calls("PATCH") == []


async def test_edit_sends_changes_then_refetches(view, stub):
    await loaded(view, stub, ROW, {**ROW, "numClients": 3, "notes": "birthday"})
    stub.on("PATCH", "bookings", ok({**ROW, "numClients": 3, "notes": "birthday"}))

    draft = view.begin_edit()
    draft.num_clients = 3
    draft.notes = "birthday"
    result = await view.submit_edit()

    assert result.ok
    assert result.message == "Booking updated"
    assert body(stub.calls("PATCH")[0]) == {"numClients": 3, "notes": "birthday"}
    assert len(stub.calls("GET", "bookings")) == 2
    assert view.booking.num_clients == 3
    assert view.state == ViewState.LOADED
    assert view.draft is None


async def test_failed_edit_keeps_booking(view, stub):
    await loaded(view, stub)
    stub.on("PATCH", "bookings", store_error(500, "deadlock detected"))

    draft = view.begin_edit()
    draft.total_price = 75
    result = await view.submit_edit()

    assert not result.ok
    assert "could not be updated" in result.message
    assert "deadlock" not in result.message
    assert view.booking.total_price == 60
    assert view.state == ViewState.EDITING
    assert view.field_errors[0].field == "submit"
    assert not view.busy


async def test_busy_blocks_resubmission(view, stub):
    await loaded(view, stub)
    draft = view.begin_edit()
    draft.notes = "again"
    view.busy = True

    result = await view.submit_edit()

    assert not result.ok
    assert result.message == BUSY_MESSAGE
    assert stub.calls("PATCH") == []


async def test_cancel_edit(view, stub):
    await loaded(view, stub)
    draft = view.begin_edit()
    draft.notes = "discard me"

    view.cancel_edit()

    assert view.state == ViewState.LOADED
    assert view.draft is None
    assert view.booking.notes == ""


async def test_complete(view, stub):
    await loaded(view, stub, ROW, {**ROW, "status": "completed"})
    stub.on("PATCH", "bookings", ok({**ROW, "status": "completed"}))

    result = await view.complete()

    assert result.ok
    assert body(stub.calls("PATCH")[0]) == {"status": "completed"}
    assert view.booking.status.value == "completed"


async def test_close_while_edit_in_flight(view, stub):
    await loaded(view, stub)

    def close_then_answer(request):
        view.close()
        return ok({**ROW, "notes": "late"})

    stub.on("PATCH", "bookings", close_then_answer)
    draft = view.begin_edit()
    draft.notes = "late"

    result = await view.submit_edit()

    assert result.ok
    assert result.message == "Booking updated"
    assert result.booking is None
    # no refetch after close, and the view is left as it was
    assert len(stub.calls("GET", "bookings")) == 1
    assert view.state == ViewState.EDITING
    assert view.booking.notes == ""
    assert not view.busy


async def test_edit_saved_but_reload_failed(view, stub):
    stub.on("GET", "bookings", ok([ROW]), store_error(500))
    await view.load()
    stub.on("PATCH", "bookings", ok({**ROW, "notes": "late"}))

    draft = view.begin_edit()
    draft.notes = "late"
    result = await view.submit_edit()

    assert result.ok
    assert result.message == "Booking updated, but the latest details could not be loaded"
    assert result.booking is None
    assert view.state == ViewState.ERROR
    assert view.error == "Booking could not be loaded"
    assert view.draft is None
    assert not view.busy


async def test_complete_saved_but_reload_failed(view, stub):
    stub.on("GET", "bookings", ok([ROW]), store_error(500))
    await view.load()
    stub.on("PATCH", "bookings", ok({**ROW, "status": "completed"}))

    result = await view.complete()

    assert result.ok
    assert "could not be loaded" in result.message
    assert result.booking is None
    assert view.state == ViewState.ERROR


async def test_close_while_complete_in_flight(view, stub):
    await loaded(view, stub)

    def close_then_answer(request):
        view.close()
        return ok({**ROW, "status": "completed"})

    stub.on("PATCH", "bookings", close_then_answer)

    result = await view.complete()

    assert result.ok
    assert result.booking is None
    assert len(stub.calls("GET", "bookings")) == 1
    assert view.state == ViewState.LOADED


# ---- delete ----

async def test_delete_needs_confirmation(view, stub):
    await loaded(view, stub)

    view.request_delete()
    assert view.state == ViewState.CONFIRMING_DELETE
    view.cancel_delete()

    assert view.state == ViewState.LOADED
    assert stub.calls("DELETE") == []


async def test_confirm_delete(view, stub):
    await loaded(view, stub)
    stub.on("DELETE", "bookings", ok([]))

    view.request_delete()
    result = await view.confirm_delete()

    assert result.ok
    assert result.message == "Booking deleted"
    assert view.state == ViewState.DELETED


async def test_confirm_without_request_is_rejected(view, stub):
    await loaded(view, stub)
    with pytest.raises(InvalidTransition):
        await view.confirm_delete()
    assert stub.calls("DELETE") == []


async def test_failed_delete_returns_to_loaded(view, stub):
    await loaded(view, stub)
    stub.on("DELETE", "bookings", store_error(500))

    view.request_delete()
    result = await view.confirm_delete()

    assert not result.ok
    assert result.message == "Booking could not be deleted"
    assert view.state == ViewState.LOADED
    assert view.booking.id == 5


async def test_close_while_delete_in_flight(view, stub):
    await loaded(view, stub)

    def close_then_answer(request):
        view.close()
        return ok([])

    stub.on("DELETE", "bookings", close_then_answer)
    view.request_delete()

    result = await view.confirm_delete()

    assert result.ok
    assert result.message == "Booking deleted"
    assert view.state == ViewState.CONFIRMING_DELETE
    assert not view.busy


# ---- drafts ----

def test_booking_draft_validation():
    start = datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc)
    draft = BookingDraft(start_time=start, end_time=start, num_clients=0, total_price=-1, tz=timezone.utc)

    errors = {e.field: e.message for e in draft.validate()}

    assert errors == {
        "endTime": "End time must be after start time",
        "numClients": "At least one client is required",
        "totalPrice": "Total price cannot be negative",
    }


def test_booking_draft_requires_times():
    errors = {e.field for e in BookingDraft().validate()}
    assert errors == {"startTime", "endTime"}


def test_booking_draft_rejects_missing_or_unknown_status():
    start = datetime(2025, 10, 1, 9, 0, tzinfo=timezone.utc)
    draft = BookingDraft(start_time=start, end_time=start + timedelta(hours=1), tz=timezone.utc)

    draft.status = None
    assert {e.field: e.message for e in draft.validate()} == {"status": "Status is required"}

    draft.status = "archived"
    assert {e.field: e.message for e in draft.validate()} == {"status": "Unknown status: archived"}


def test_booking_draft_from_booking_uses_local_time():
    tz = timezone(timedelta(hours=-4))
    booking = Booking.model_validate(ROW)
    draft = BookingDraft.from_booking(booking, tz)
    assert draft.start_time.hour == 5
    assert draft.to_fields()["startTime"] == "2025-10-01T05:00:00-04:00"


def test_service_draft_validation():
    errors = {e.field: e.message for e in ServiceDraft(name=" ", regular_price=0, duration=0).validate()}
    assert errors == {
        "name": "This field is required",
        "regularPrice": "Price should be at least 1",
        "duration": "Duration should be at least 1 minute",
        "category": "This field is required",
    }


def test_service_draft_discount_above_price():
    draft = ServiceDraft(name="Cut", regular_price=20, duration=30, category="hair", discount=25)
    assert [e.message for e in draft.validate()] == ["Discount should be less than the regular price"]


def test_service_draft_to_fields():
    draft = ServiceDraft(name=" Cut ", regular_price=20, duration=30, category="hair")
    assert draft.validate() == []
    assert draft.to_fields() == {
        "name": "Cut",
        "regularPrice": 20,
        "duration": 30,
        "category": "hair",
        "discount": 0,
    }
