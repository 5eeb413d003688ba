import asyncio
from datetime import date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from . import bookings_api, clients_api, roster_api, services_api, staff_api
from .booking_detail import BookingDetailWorkflow, ViewState
from .cache import CollectionCache
from .config import PAGE_SIZE
from .deps import get_cache, get_store
from .drafts import BookingDraft, ServiceDraft, ShiftDraft
from .errors import FieldError, NotFoundError, ValidationError
from .formatting import (
    format_booking_duration,
    format_currency,
    format_date,
    format_time,
    viewer_tz,
)
from .query import BOOKINGS, SERVICES, apply_directive, apply_sort, parse_directive
from .schemas import (
    Booking,
    BookingStatus,
    BulkStatusUpdate,
    ClientIn,
    CreateBooking,
    EditBooking,
    ServiceIn,
    ShiftIn,
)
from .stats import compute_dashboard_stats, local_day_bounds
from .store import StoreClient

router = APIRouter()


def _listing(items, count: int, page: int | None = None) -> dict:
    return {
        "items": [i.to_wire() for i in items],
        "count": count,
        "page": page,
        "page_size": PAGE_SIZE if page else None,
    }


def _booking_view(booking: Booking) -> dict:
    data = booking.to_wire()
    data["display"] = {
        "date": format_date(booking.start_time),
        "start": format_time(booking.start_time),
        "end": format_time(booking.end_time),
        "duration": format_booking_duration(booking.start_time, booking.end_time),
        "total": format_currency(booking.total_price or 0),
        "services": ", ".join(s.name for s in booking.services if s.name) or "Service not specified",
    }
    return data


async def _open_detail(store: StoreClient, cache: CollectionCache | None, booking_id: int) -> BookingDetailWorkflow:
    view = BookingDetailWorkflow(store, booking_id, cache=cache, tz=viewer_tz())
    await view.load()
    if view.state == ViewState.ERROR:
        if view.not_found:
            raise NotFoundError(view.error)
        raise HTTPException(status_code=502, detail=view.error)
    return view


async def _ensure_staff_free(store: StoreClient, staff_id, start, end, exclude_booking_id: int | None = None):
    reason = await roster_api.check_booking_slot(
        store, staff_id, start, end, exclude_booking_id=exclude_booking_id, tz=viewer_tz()
    )
    if reason:
        raise ValidationError([FieldError("staffId", reason)])


def _raise_for_result(result):
    if result.ok:
        return
    field_errors = [e for e in result.field_errors if e.field != "submit"]
    if field_errors:
        raise ValidationError(field_errors)
    raise HTTPException(status_code=502, detail=result.message)


# ================= BOOKINGS =================

@router.get("/bookings", tags=["Bookings"])
async def list_bookings(
    request: Request,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    directive = parse_directive(request.query_params, BOOKINGS)
    items, count = await bookings_api.get_bookings(store, directive, cache=cache)
    return _listing(items, count, directive.page)


@router.post("/bookings", status_code=201, tags=["Bookings"])
async def create_booking_endpoint(
    data: CreateBooking,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    draft = BookingDraft(
        start_time=data.start_time,
        end_time=data.end_time,
        num_clients=data.num_clients,
        status=data.status,
        notes=data.notes or "",
        total_price=data.total_price or 0.0,
        tz=viewer_tz(),
    )
    errors = draft.validate()
    if errors:
        raise ValidationError(errors)
    if data.staff_id is not None:
        await _ensure_staff_free(store, data.staff_id, data.start_time, data.end_time)

    booking = await bookings_api.create_booking(store, data.to_wire(), cache=cache)
    return booking.to_wire()


@router.get("/bookings/pending", tags=["Bookings"])
async def pending_bookings(request: Request, store: StoreClient = Depends(get_store)):
    bookings = await bookings_api.get_pending_bookings(store)
    if "sortBy" in request.query_params:
        directive = parse_directive(request.query_params, BOOKINGS)
        bookings = apply_sort(bookings, directive.sort, BOOKINGS)
    return _listing(bookings, len(bookings))


@router.post("/bookings/confirm", tags=["Bookings"])
async def bulk_update_status(
    data: BulkStatusUpdate,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    updated = await bookings_api.update_bookings_status(store, data.ids, data.status, cache=cache)
    return _listing(updated, len(updated))


@router.get("/bookings/activity/today", tags=["Bookings"])
async def today_activity(store: StoreClient = Depends(get_store)):
    bookings = await bookings_api.get_today_activity(store, tz=viewer_tz())
    return _listing(bookings, len(bookings))


@router.get("/bookings/{booking_id}", tags=["Bookings"])
async def get_booking_endpoint(booking_id: int, store: StoreClient = Depends(get_store)):
    booking = await bookings_api.get_booking(store, booking_id)
    return _booking_view(booking)


@router.patch("/bookings/{booking_id}", tags=["Bookings"])
async def edit_booking_endpoint(
    booking_id: int,
    data: EditBooking,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    view = await _open_detail(store, cache, booking_id)
    draft = view.begin_edit()
    for name in data.model_fields_set:
        setattr(draft, name, getattr(data, name))

    moved = data.model_fields_set & {"start_time", "end_time"}
    if moved and view.booking.staff_id is not None and not draft.validate():
        await _ensure_staff_free(
            store, view.booking.staff_id, draft.start_time, draft.end_time, exclude_booking_id=booking_id
        )

    result = await view.submit_edit(draft)
    _raise_for_result(result)
    return {"message": result.message, "booking": _booking_view(result.booking) if result.booking else None}


@router.post("/bookings/{booking_id}/complete", tags=["Bookings"])
async def complete_booking_endpoint(
    booking_id: int,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    view = await _open_detail(store, cache, booking_id)
    result = await view.complete()
    _raise_for_result(result)
    return {"message": result.message, "booking": _booking_view(result.booking) if result.booking else None}


@router.post("/bookings/{booking_id}/cancel", tags=["Bookings"])
async def cancel_booking_endpoint(
    booking_id: int,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    booking = await bookings_api.update_booking(
        store, booking_id, {"status": BookingStatus.CANCELLED.value}, cache=cache
    )
    return booking.to_wire()


@router.delete("/bookings/{booking_id}", tags=["Bookings"])
async def delete_booking_endpoint(
    booking_id: int,
    confirm: bool = False,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    if not confirm:
        raise HTTPException(status_code=409, detail="Deleting a booking requires confirm=true")

    view = await _open_detail(store, cache, booking_id)
    view.request_delete()
    result = await view.confirm_delete()
    _raise_for_result(result)
    return {"message": result.message}


# ================= SERVICES =================

@router.get("/services", tags=["Services"])
async def list_services(
    request: Request,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    directive = parse_directive(request.query_params, SERVICES)
    services = await services_api.get_services(store, cache=cache)
    items = apply_directive(services, directive, SERVICES)
    return _listing(items, len(items))


def _service_draft(data: ServiceIn) -> ServiceDraft:
    draft = ServiceDraft(
        name=data.name or "",
        regular_price=data.regular_price,
        duration=data.duration,
        category=data.category or "",
        discount=data.discount or 0.0,
        description=data.description,
        image=data.image,
    )
    errors = draft.validate()
    if errors:
        raise ValidationError(errors)
    return draft


@router.post("/services", status_code=201, tags=["Services"])
async def create_service_endpoint(
    data: ServiceIn,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    draft = _service_draft(data)
    service = await services_api.create_edit_service(store, draft.to_fields(), cache=cache)
    return service.to_wire()


@router.patch("/services/{service_id}", tags=["Services"])
async def edit_service_endpoint(
    service_id: int,
    data: ServiceIn,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    # the edit form always posts the whole service
    draft = _service_draft(data)
    service = await services_api.create_edit_service(store, draft.to_fields(), service_id, cache=cache)
    return service.to_wire()


@router.delete("/services/{service_id}", tags=["Services"])
async def delete_service_endpoint(
    service_id: int,
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    await services_api.delete_service(store, service_id, cache=cache)
    return {"message": "Service successfully deleted"}


# ================= CLIENTS / STAFF =================

@router.get("/clients", tags=["Clients"])
async def list_clients(store: StoreClient = Depends(get_store)):
    clients = await clients_api.get_clients(store)
    return _listing(clients, len(clients))


@router.post("/clients", status_code=201, tags=["Clients"])
async def create_client_endpoint(data: ClientIn, store: StoreClient = Depends(get_store)):
    client = await clients_api.create_client(store, data.to_wire())
    return client.to_wire()


@router.get("/staff", tags=["Staff"])
async def list_staff(store: StoreClient = Depends(get_store)):
    staff = await staff_api.get_staff(store)
    return _listing(staff, len(staff))


# ================= ROSTER =================

@router.get("/roster/shifts", tags=["Roster"])
async def list_shifts(
    staff_id: int | None = Query(None, alias="staffId"),
    day_of_week: int | None = Query(None, alias="dayOfWeek", ge=0, le=6),
    specific_date: date | None = Query(None, alias="specificDate"),
    start: date | None = None,
    end: date | None = None,
    store: StoreClient = Depends(get_store),
):
    date_range = (start, end) if start and end else None
    shifts = await roster_api.get_staff_shifts(
        store,
        staff_id=staff_id,
        day_of_week=day_of_week,
        specific_date=specific_date,
        date_range=date_range,
    )
    return _listing(shifts, len(shifts))


@router.get("/roster/shifts/recurring", tags=["Roster"])
async def recurring_shifts(
    staff_id: int | None = Query(None, alias="staffId"),
    store: StoreClient = Depends(get_store),
):
    shifts = await roster_api.get_recurring_shifts(store, staff_id)
    return _listing(shifts, len(shifts))


@router.get("/roster/shifts/specific", tags=["Roster"])
async def specific_date_shifts(
    start: date | None = None,
    end: date | None = None,
    staff_id: int | None = Query(None, alias="staffId"),
    store: StoreClient = Depends(get_store),
):
    shifts = await roster_api.get_specific_date_shifts(store, start, end, staff_id)
    return _listing(shifts, len(shifts))


@router.get("/roster/shifts/range", tags=["Roster"])
async def shifts_in_range(
    start: date,
    end: date,
    staff_id: int | None = Query(None, alias="staffId"),
    store: StoreClient = Depends(get_store),
):
    if end < start:
        raise ValidationError([FieldError("end", "End date must not be before start date")])
    shifts = await roster_api.get_shifts_for_date_range(store, start, end, staff_id)
    return _listing(shifts, len(shifts))


@router.get("/roster/shifts/date/{day}", tags=["Roster"])
async def shifts_on_date(
    day: date,
    staff_id: int | None = Query(None, alias="staffId"),
    store: StoreClient = Depends(get_store),
):
    shifts = await roster_api.get_shifts_for_date(store, day, staff_id)
    return _listing(shifts, len(shifts))


@router.get("/roster/availability", tags=["Roster"])
async def staff_availability(
    staff_id: int = Query(alias="staffId"),
    day: date = Query(alias="date"),
    start_time: time = Query(alias="startTime"),
    end_time: time = Query(alias="endTime"),
    exclude_shift_id: int | None = Query(None, alias="excludeShiftId"),
    store: StoreClient = Depends(get_store),
):
    if start_time >= end_time:
        raise ValidationError([FieldError("endTime", "End time must be after start time")])
    available = await roster_api.check_staff_availability(
        store, staff_id, day, start_time, end_time, exclude_shift_id
    )
    return {"staffId": staff_id, "date": day.isoformat(), "available": available}


@router.post("/roster/shifts", status_code=201, tags=["Roster"])
async def create_shift_endpoint(data: ShiftIn, store: StoreClient = Depends(get_store)):
    draft = ShiftDraft(
        staff_id=data.staff_id,
        start_time=data.start_time,
        end_time=data.end_time,
        day_of_week=data.day_of_week,
        specific_date=data.specific_date,
        notes=data.notes,
    )
    shift = await roster_api.create_staff_shift(store, draft)
    return shift.to_wire()


@router.patch("/roster/shifts/{shift_id}", tags=["Roster"])
async def edit_shift_endpoint(shift_id: int, data: ShiftIn, store: StoreClient = Depends(get_store)):
    fields = data.model_dump(mode="json", by_alias=True, exclude_unset=True)
    shift = await roster_api.update_staff_shift(store, shift_id, fields)
    return shift.to_wire()


@router.delete("/roster/shifts/{shift_id}", tags=["Roster"])
async def delete_shift_endpoint(shift_id: int, store: StoreClient = Depends(get_store)):
    await roster_api.delete_staff_shift(store, shift_id)
    return {"message": "Shift successfully deleted"}


# ================= DASHBOARD =================

@router.get("/dashboard", tags=["Dashboard"])
async def dashboard(
    last: int = Query(7, ge=1, le=365),
    store: StoreClient = Depends(get_store),
    cache: CollectionCache | None = Depends(get_cache),
):
    tz = viewer_tz()
    start_of_today, _ = local_day_bounds(tz=tz)
    since = datetime.now(tz) - timedelta(days=last)
    todays, recent = await asyncio.gather(
        bookings_api.get_stays_after_date(store, start_of_today, tz=tz),
        bookings_api.get_bookings_after_date(store, since, tz=tz),
    )
    services = await services_api.get_services(store, cache=cache)

    stats = compute_dashboard_stats(todays, service_count=len(services), tz=tz, sales=recent)
    return {
        "last_days": last,
        "stats": stats.model_dump(),
        "display": {
            "today_revenue": format_currency(stats.today_revenue),
            "total_sales": format_currency(stats.total_sales),
        },
    }
