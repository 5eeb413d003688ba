from datetime import datetime, tzinfo
from typing import Iterable

from .access import parse_row, parse_rows, unwrap
from .cache import CollectionCache
from .config import PAGE_SIZE
from .errors import NotFoundError
from .query import QueryDirective
from .schemas import Booking, BookingStatus, ManyServices, Service, ServiceRef, SingleService
from .stats import local_day_bounds
from .store import StoreClient, quote_value

TABLE = "bookings"
SERVICES_TABLE = "services"

LIST_COLUMNS = """
    id, created_at, startTime, endTime, numClients, status, totalPrice,
    staffId, phone, name, serviceIds, services(name), client(fullName, email)
"""
DETAIL_COLUMNS = """
    *,
    client!clientId(id, fullName, email, phone),
    staff!staffId(id, name)
"""
SERVICE_COLUMNS = "id, name, duration, regularPrice, description"


async def _invalidate(cache: CollectionCache | None):
    if cache:
        await cache.invalidate(TABLE)


# -------- READ --------

async def get_bookings(
    store: StoreClient,
    directive: QueryDirective | None = None,
    *,
    cache: CollectionCache | None = None,
    page_size: int = PAGE_SIZE,
) -> tuple[list[Booking], int]:
    """
    Fetch one page of bookings shaped by the directive.
    Returns (items, total count across all pages).
    """
    directive = directive or QueryDirective()
    variant = directive.cache_variant()

    if cache:
        cached = await cache.get(TABLE, variant)
        if cached is not None:
            return parse_rows(Booking, cached["items"], "Bookings could not be loaded"), cached["count"]

    query = store.table(TABLE).select(LIST_COLUMNS, count="exact")

    if directive.filter:
        flt = directive.filter
        query = query.filter(flt.field, flt.method, flt.value)

    if directive.sort:
        query = query.order(directive.sort.field, ascending=directive.sort.ascending)

    if directive.page:
        start = (directive.page - 1) * page_size
        query = query.range(start, start + page_size - 1)

    result = await query.execute()
    rows = unwrap(result, "Bookings could not be loaded") or []
    items = parse_rows(Booking, rows, "Bookings could not be loaded")
    count = result.count if result.count is not None else len(items)

    if cache:
        await cache.set(TABLE, variant, {"items": rows, "count": count})

    return items, count


def _service_ids(ref: ServiceRef | None) -> tuple:
    if isinstance(ref, ManyServices):
        return ref.ids
    if isinstance(ref, SingleService):
        return (ref.id,)
    return ()


async def resolve_services(store: StoreClient, ref: ServiceRef | None) -> list[Service]:
    if ref is None:
        return []

    query = store.table(SERVICES_TABLE).select(SERVICE_COLUMNS)
    if isinstance(ref, ManyServices):
        if not ref.ids:
            return []
        query = query.in_("id", ref.ids)
    elif isinstance(ref, SingleService):
        query = query.eq("id", ref.id)
    else:
        raise TypeError(f"Unsupported service reference: {ref!r}")

    result = await query.execute()
    rows = unwrap(result, "Booking services could not be loaded")
    services = parse_rows(Service, rows, "Booking services could not be loaded")

    if isinstance(ref, ManyServices):
        # keep the booking's own ordering
        by_id = {s.id: s for s in services}
        return [by_id[i] for i in ref.ids if i in by_id]
    return services


async def get_booking(store: StoreClient, booking_id: int) -> Booking:
    """Booking with joined client and staff plus its resolved services."""
    result = await store.table(TABLE).select(DETAIL_COLUMNS).eq("id", booking_id).execute()
    rows = unwrap(result, "Booking could not be loaded")
    if not rows:
        raise NotFoundError(f"Booking {booking_id} not found")

    booking = parse_row(Booking, rows[0], "Booking could not be loaded")
    booking.services = await resolve_services(store, booking.service_ref())
    return booking


async def get_bookings_after_date(
    store: StoreClient, since: datetime, *, now: datetime | None = None, tz: tzinfo | None = None
) -> list[Booking]:
    """Bookings created between `since` and the end of today."""
    _, end_of_today = local_day_bounds(now, tz)
    result = await (
        store.table(TABLE)
        .select("id, created_at, startTime, totalPrice, status")
        .gte("created_at", since)
        .lt("created_at", end_of_today)
        .execute()
    )
    rows = unwrap(result, "Bookings could not be loaded")
    return parse_rows(Booking, rows, "Bookings could not be loaded")


async def get_stays_after_date(
    store: StoreClient, since: datetime, *, now: datetime | None = None, tz: tzinfo | None = None
) -> list[Booking]:
    """Bookings whose start falls between `since` and the end of today."""
    _, end_of_today = local_day_bounds(now, tz)
    result = await (
        store.table(TABLE)
        .select("*, client!clientId(fullName)")
        .gte("startTime", since)
        .lt("startTime", end_of_today)
        .execute()
    )
    rows = unwrap(result, "Bookings could not be loaded")
    return parse_rows(Booking, rows, "Bookings could not be loaded")


async def get_today_activity(
    store: StoreClient, *, now: datetime | None = None, tz: tzinfo | None = None
) -> list[Booking]:
    """
    Legacy check-in/out activity: unconfirmed bookings starting today and
    checked-in bookings ending today.
    """
    start, end = local_day_bounds(now, tz)
    s, e = quote_value(start), quote_value(end)
    expression = (
        f"and(status.eq.{BookingStatus.UNCONFIRMED.value},startTime.gte.{s},startTime.lt.{e}),"
        f"and(status.eq.{BookingStatus.CHECKED_IN.value},endTime.gte.{s},endTime.lt.{e})"
    )
    result = await (
        store.table(TABLE)
        .select("*, client!clientId(fullName, email, phone)")
        .or_(expression)
        .order("created_at")
        .execute()
    )
    rows = unwrap(result, "Bookings could not be loaded")
    return parse_rows(Booking, rows, "Bookings could not be loaded")


async def get_pending_bookings(store: StoreClient) -> list[Booking]:
    """Pending bookings, soonest first, with client, staff and services attached."""
    result = await (
        store.table(TABLE)
        .select(DETAIL_COLUMNS)
        .eq("status", BookingStatus.PENDING.value)
        .order("startTime", ascending=True)
        .execute()
    )
    rows = unwrap(result, "Pending bookings could not be loaded")
    bookings = parse_rows(Booking, rows, "Pending bookings could not be loaded")

    # one round trip for every referenced service
    wanted = list(dict.fromkeys(i for b in bookings for i in _service_ids(b.service_ref())))

    if wanted:
        services = await resolve_services(store, ManyServices(tuple(wanted)))
        by_id = {s.id: s for s in services}
        for b in bookings:
            b.services = [by_id[i] for i in _service_ids(b.service_ref()) if i in by_id]

    return bookings


# -------- WRITE --------

async def create_booking(store: StoreClient, fields: dict, *, cache: CollectionCache | None = None) -> Booking:
    result = await store.table(TABLE).insert([fields]).select().single().execute()
    row = unwrap(result, "Booking could not be created")
    booking = parse_row(Booking, row, "Booking could not be created")
    await _invalidate(cache)
    return booking


async def update_booking(
    store: StoreClient, booking_id: int, fields: dict, *, cache: CollectionCache | None = None
) -> Booking:
    result = await store.table(TABLE).update(fields).eq("id", booking_id).select().single().execute()
    row = unwrap(result, "Booking could not be updated")
    booking = parse_row(Booking, row, "Booking could not be updated")
    await _invalidate(cache)
    return booking


async def update_bookings_status(
    store: StoreClient,
    booking_ids: Iterable[int],
    status: BookingStatus,
    *,
    cache: CollectionCache | None = None,
) -> list[Booking]:
    """Bulk status change (confirm / cancel several pending bookings)."""
    ids = list(booking_ids)
    if not ids:
        return []
    result = await (
        store.table(TABLE)
        .update({"status": BookingStatus(status).value})
        .in_("id", ids)
        .select()
        .execute()
    )
    rows = unwrap(result, "Bookings could not be updated")
    bookings = parse_rows(Booking, rows, "Bookings could not be updated")
    await _invalidate(cache)
    return bookings


async def delete_booking(store: StoreClient, booking_id: int, *, cache: CollectionCache | None = None) -> None:
    result = await store.table(TABLE).delete().eq("id", booking_id).execute()
    unwrap(result, "Booking could not be deleted")
    await _invalidate(cache)


async def get_staff_bookings_between(
    store: StoreClient,
    staff_id,
    start: datetime,
    end: datetime,
    *,
    exclude_booking_id: int | None = None,
) -> list[Booking]:
    """Non-cancelled bookings of one staff member that overlap [start, end)."""
    query = (
        store.table(TABLE)
        .select("id, startTime, endTime, status, staffId")
        .eq("staffId", staff_id)
        .lt("startTime", end)
        .gt("endTime", start)
        .neq("status", BookingStatus.CANCELLED.value)
    )
    if exclude_booking_id is not None:
        query = query.neq("id", exclude_booking_id)
    result = await query.execute()
    rows = unwrap(result, "Staff bookings could not be loaded")
    return parse_rows(Booking, rows, "Staff bookings could not be loaded")
