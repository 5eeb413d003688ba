import logging
from datetime import date, datetime, time, timedelta, tzinfo

from . import bookings_api
from .access import parse_row, parse_rows, unwrap
from .drafts import ShiftDraft
from .errors import FieldError, ValidationError
from .formatting import to_local
from .schemas import Shift
from .store import StoreClient

logger = logging.getLogger(__name__)

TABLE = "staff_shifts"
SHIFT_COLUMNS = "*, staff:staffId(id, name)"

STAFF_DOUBLE_BOOKED = "Staff member already has a booking at this time"
STAFF_NOT_ROSTERED = "Staff member is not rostered at this time"


def roster_weekday(day: date) -> int:
    """Day of week as the roster stores it: 0 = Sunday ... 6 = Saturday."""
    return day.isoweekday() % 7


def _laid_out(shift: Shift, day: date) -> Shift:
    return shift.model_copy(update={"effective_date": day, "is_recurring": True})


# -------- READ --------

async def get_staff_shifts(
    store: StoreClient,
    *,
    staff_id=None,
    day_of_week: int | None = None,
    specific_date: date | None = None,
    date_range: tuple[date, date] | None = None,
) -> list[Shift]:
    query = store.table(TABLE).select(SHIFT_COLUMNS)
    if staff_id is not None:
        query = query.eq("staffId", staff_id)
    if day_of_week is not None:
        query = query.eq("dayOfWeek", day_of_week)
    if specific_date is not None:
        query = query.eq("specificDate", specific_date)
    if date_range is not None:
        query = query.gte("specificDate", date_range[0]).lte("specificDate", date_range[1])

    query = (
        query.order("specificDate", nulls_first=False)
        .order("dayOfWeek", nulls_first=False)
        .order("startTime")
    )
    result = await query.execute()
    rows = unwrap(result, "Shifts could not be loaded")
    return parse_rows(Shift, rows, "Shifts could not be loaded")


async def get_recurring_shifts(store: StoreClient, staff_id=None) -> list[Shift]:
    """The weekly schedule."""
    query = store.table(TABLE).select(SHIFT_COLUMNS).is_("specificDate", None)
    if staff_id is not None:
        query = query.eq("staffId", staff_id)
    result = await query.order("dayOfWeek").order("startTime").execute()
    rows = unwrap(result, "Recurring shifts could not be loaded")
    return parse_rows(Shift, rows, "Recurring shifts could not be loaded")


async def get_specific_date_shifts(
    store: StoreClient, start: date | None = None, end: date | None = None, staff_id=None
) -> list[Shift]:
    query = store.table(TABLE).select(SHIFT_COLUMNS).not_("specificDate", "is", None)
    if start is not None:
        query = query.gte("specificDate", start)
    if end is not None:
        query = query.lte("specificDate", end)
    if staff_id is not None:
        query = query.eq("staffId", staff_id)
    result = await query.order("specificDate").order("startTime").execute()
    rows = unwrap(result, "Specific date shifts could not be loaded")
    return parse_rows(Shift, rows, "Specific date shifts could not be loaded")


async def get_shifts_for_date(store: StoreClient, day: date, staff_id=None) -> list[Shift]:
    """One-off shifts on `day` plus the weekly shifts that fall on it, by start time."""
    specific = store.table(TABLE).select(SHIFT_COLUMNS).eq("specificDate", day)
    recurring = (
        store.table(TABLE)
        .select(SHIFT_COLUMNS)
        .eq("dayOfWeek", roster_weekday(day))
        .is_("specificDate", None)
    )
    if staff_id is not None:
        specific = specific.eq("staffId", staff_id)
        recurring = recurring.eq("staffId", staff_id)

    shifts = parse_rows(
        Shift, unwrap(await specific.execute(), "Shifts could not be loaded"), "Shifts could not be loaded"
    )
    weekly = parse_rows(
        Shift, unwrap(await recurring.execute(), "Shifts could not be loaded"), "Shifts could not be loaded"
    )
    shifts.extend(_laid_out(s, day) for s in weekly)
    return sorted(shifts, key=lambda s: s.start_time or time.min)


async def get_shifts_for_date_range(store: StoreClient, start: date, end: date, staff_id=None) -> list[Shift]:
    """Every shift worked between `start` and `end` inclusive, weekly ones laid out per day."""
    shifts = await get_specific_date_shifts(store, start, end, staff_id)
    weekly = await get_recurring_shifts(store, staff_id)

    by_weekday: dict[int, list[Shift]] = {}
    for s in weekly:
        if s.day_of_week is not None:
            by_weekday.setdefault(s.day_of_week, []).append(s)

    day = start
    while day <= end:
        shifts.extend(_laid_out(s, day) for s in by_weekday.get(roster_weekday(day), []))
        day += timedelta(days=1)

    return sorted(shifts, key=lambda s: (s.on_date or date.min, s.start_time or time.min))


async def has_roster(store: StoreClient, staff_id) -> bool:
    result = await store.table(TABLE).select("id").eq("staffId", staff_id).range(0, 0).execute()
    return bool(unwrap(result, "Shifts could not be loaded"))


# -------- WRITE --------

async def _ensure_unique(store: StoreClient, draft: ShiftDraft, exclude_shift_id: int | None = None) -> None:
    query = store.table(TABLE).select("id").eq("staffId", draft.staff_id)
    if draft.is_recurring:
        query = query.eq("dayOfWeek", draft.day_of_week).is_("specificDate", None)
    else:
        query = query.eq("specificDate", draft.specific_date)
    if exclude_shift_id is not None:
        query = query.neq("id", exclude_shift_id)

    existing = unwrap(await query.execute(), "Shift could not be validated")
    if not existing:
        return
    if draft.is_recurring:
        raise ValidationError([FieldError("dayOfWeek", "Staff member already has a recurring shift on this day")])
    raise ValidationError([FieldError("specificDate", "Staff member already has a shift scheduled for this date")])


async def create_staff_shift(store: StoreClient, draft: ShiftDraft) -> Shift:
    errors = draft.validate()
    if errors:
        raise ValidationError(errors)
    await _ensure_unique(store, draft)

    result = await store.table(TABLE).insert([draft.to_fields()]).select(SHIFT_COLUMNS).single().execute()
    row = unwrap(result, "Shift could not be created")
    return parse_row(Shift, row, "Shift could not be created")


async def update_staff_shift(store: StoreClient, shift_id: int, fields: dict) -> Shift:
    errors = [
        FieldError(key, "This field is required")
        for key in ("staffId", "startTime", "endTime")
        if key in fields and fields[key] in (None, "")
    ]
    if errors:
        raise ValidationError(errors)

    result = await (
        store.table(TABLE).update(fields).eq("id", shift_id).select(SHIFT_COLUMNS).single().execute()
    )
    row = unwrap(result, "Shift could not be updated")
    return parse_row(Shift, row, "Shift could not be updated")


async def delete_staff_shift(store: StoreClient, shift_id: int) -> None:
    result = await store.table(TABLE).delete().eq("id", shift_id).execute()
    unwrap(result, "Shift could not be deleted")


# -------- AVAILABILITY --------

async def check_staff_availability(
    store: StoreClient,
    staff_id,
    day: date,
    start: time,
    end: time,
    exclude_shift_id: int | None = None,
) -> bool:
    """True when a new shift [start, end) on `day` would not overlap an existing one."""
    shifts = await get_shifts_for_date(store, day, staff_id)
    return not any(s.overlaps(start, end) for s in shifts if s.id != exclude_shift_id)


async def check_booking_slot(
    store: StoreClient,
    staff_id,
    start: datetime,
    end: datetime,
    *,
    exclude_booking_id: int | None = None,
    tz: tzinfo | None = None,
) -> str | None:
    """
    Reason the staff member cannot take a booking from `start` to `end`, or None.

    The slot must not overlap another of their bookings and, for staff who
    have a roster at all, must sit inside one of their shifts that day.
    """
    local_start, local_end = to_local(start, tz), to_local(end, tz)

    clashes = await bookings_api.get_staff_bookings_between(
        store, staff_id, local_start, local_end, exclude_booking_id=exclude_booking_id
    )
    if clashes:
        logger.info("Staff %s double booked by slot %s - %s", staff_id, local_start, local_end)
        return STAFF_DOUBLE_BOOKED

    shifts = await get_shifts_for_date(store, local_start.date(), staff_id)
    if not shifts:
        return STAFF_NOT_ROSTERED if await has_roster(store, staff_id) else None

    if local_end.date() != local_start.date():
        return STAFF_NOT_ROSTERED
    if any(s.covers(local_start.time(), local_end.time()) for s in shifts):
        return None
    return STAFF_NOT_ROSTERED
