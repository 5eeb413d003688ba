from datetime import datetime, time, timedelta, tzinfo
from typing import Iterable

from .formatting import to_local, viewer_tz
from .schemas import Booking, BookingStatus, DashboardStats


def local_day_bounds(now: datetime | None = None, tz: tzinfo | None = None) -> tuple[datetime, datetime]:
    """[start, end) of the viewer's current calendar day, as aware datetimes."""
    tz = tz or viewer_tz()
    now = now.astimezone(tz) if now else datetime.now(tz)
    start = datetime.combine(now.date(), time.min, tzinfo=tz)
    return start, start + timedelta(days=1)


def is_today(value, now: datetime | None = None, tz: tzinfo | None = None) -> bool:
    tz = tz or viewer_tz()
    local = to_local(value, tz)
    if local is None:
        return False
    start, end = local_day_bounds(now, tz)
    return start <= local < end


def _price(booking: Booking) -> float:
    return booking.total_price or 0.0


def compute_dashboard_stats(
    bookings: Iterable[Booking] | None,
    service_count: int = 0,
    now: datetime | None = None,
    tz: tzinfo | None = None,
    *,
    sales: Iterable[Booking] | None = None,
) -> DashboardStats:
    """
    Today's figures come from `bookings` (judged by start time); the totals
    come from `sales` when given (e.g. bookings created in the last N days),
    otherwise from `bookings` as well.
    """
    bookings = list(bookings or [])
    sales = bookings if sales is None else list(sales)
    todays = [b for b in bookings if is_today(b.start_time, now, tz)]

    return DashboardStats(
        today_count=len(todays),
        today_revenue=sum(_price(b) for b in todays),
        today_pending=sum(1 for b in todays if b.status == BookingStatus.PENDING),
        today_confirmed=sum(1 for b in todays if b.status == BookingStatus.CONFIRMED),
        total_count=len(sales),
        total_sales=sum(_price(b) for b in sales),
        service_count=service_count,
    )
