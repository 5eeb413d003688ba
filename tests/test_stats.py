from datetime import datetime, timezone
from zoneinfo import ZoneInfo

from salon_admin.formatting import (
    PLACEHOLDER,
    format_booking_duration,
    format_currency,
    format_date,
    format_datetime,
    format_duration,
    format_time,
    to_local_input,
)
from salon_admin.schemas import Booking
from salon_admin.stats import compute_dashboard_stats, is_today, local_day_bounds

NEW_YORK = ZoneInfo("America/New_York")
SYDNEY = ZoneInfo("Australia/Sydney")


def test_missing_price_counts_as_zero():
    now = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
    bookings = [
        Booking(id=1, startTime="2025-10-01T10:00:00Z"),
        Booking(id=2, startTime="2025-10-01T11:00:00Z", totalPrice=80),
    ]
    stats = compute_dashboard_stats(bookings, now=now, tz=timezone.utc)
    assert stats.today_count == 2
    assert stats.today_revenue == 80
    assert stats.total_sales == 80


def test_late_evening_booking_counts_for_local_day():
    # 23:30 in New York on Oct 1 is already Oct 2 in UTC
    now = datetime(2025, 10, 1, 9, 0, tzinfo=NEW_YORK)
    bookings = [Booking(id=1, startTime="2025-10-02T03:30:00Z", totalPrice=50)]

    stats = compute_dashboard_stats(bookings, now=now, tz=NEW_YORK)
    assert stats.today_count == 1
    assert stats.today_revenue == 50


def test_utc_same_day_can_be_yesterday_locally():
    now = datetime(2025, 10, 1, 9, 0, tzinfo=SYDNEY)
    # 2025-10-01T10:00Z is 20:00 on Oct 1 in Sydney; 2025-09-30T12:00Z is 22:00 Sep 30
    bookings = [
        Booking(id=1, startTime="2025-09-30T12:00:00Z", totalPrice=10),
        Booking(id=2, startTime="2025-10-01T10:00:00Z", totalPrice=20),
    ]
    stats = compute_dashboard_stats(bookings, now=now, tz=SYDNEY)
    assert stats.today_count == 1
    assert stats.today_revenue == 20


def test_status_breakdown_and_totals():
    now = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
    bookings = [
        Booking(id=1, startTime="2025-10-01T09:00:00Z", status="pending", totalPrice=30),
        Booking(id=2, startTime="2025-10-01T10:00:00Z", status="confirmed", totalPrice=40),
        Booking(id=3, startTime="2025-09-29T10:00:00Z", status="confirmed", totalPrice=100),
        Booking(id=4, status="pending"),
    ]
    stats = compute_dashboard_stats(bookings, service_count=6, now=now, tz=timezone.utc)
    assert stats.today_count == 2
    assert stats.today_pending == 1
    assert stats.today_confirmed == 1
    assert stats.total_count == 4
    assert stats.total_sales == 170
    assert stats.service_count == 6


def test_today_figures_and_totals_come_from_separate_sets():
    now = datetime(2025, 10, 1, 12, 0, tzinfo=timezone.utc)
    # booked months ago, happening today
    todays = [Booking(id=1, created_at="2025-06-01T08:00:00Z", startTime="2025-10-01T15:00:00Z", totalPrice=90)]
    recent = [
        Booking(id=2, created_at="2025-09-30T08:00:00Z", startTime="2025-11-02T10:00:00Z", totalPrice=40),
        Booking(id=3, created_at="2025-10-01T08:00:00Z", startTime="2025-12-01T10:00:00Z", totalPrice=25),
    ]

    stats = compute_dashboard_stats(todays, now=now, tz=timezone.utc, sales=recent)

    assert stats.today_count == 1
    assert stats.today_revenue == 90
    assert stats.total_count == 2
    assert stats.total_sales == 65


def test_empty_or_missing_collection():
    stats = compute_dashboard_stats(None)
    assert stats.today_count == 0
    assert stats.today_revenue == 0


def test_malformed_timestamp_is_never_today():
    assert not is_today("not a date")
    assert not is_today(None)


def test_local_day_bounds():
    start, end = local_day_bounds(datetime(2025, 10, 1, 23, 59, tzinfo=NEW_YORK), NEW_YORK)
    assert start == datetime(2025, 10, 1, tzinfo=NEW_YORK)
    assert end == datetime(2025, 10, 2, tzinfo=NEW_YORK)


# ---- formatting ----

def test_format_currency():
    assert format_currency(1234.5) == "$1,234.50"
    assert format_currency(0) == "$0.00"
    assert format_currency(-5) == "-$5.00"
    assert format_currency("45") == "$45.00"
    assert format_currency("$45") == "$45.00"
    assert format_currency("$1,234.5") == "$1,234.50"
    assert format_currency("-$5") == "-$5.00"


def test_format_currency_placeholders():
    assert format_currency(None) == PLACEHOLDER
    assert format_currency("abc") == PLACEHOLDER
    assert format_currency(float("nan")) == PLACEHOLDER
    assert format_currency("$abc") == PLACEHOLDER
    assert format_currency("$") == PLACEHOLDER
    assert format_currency("1_000") == PLACEHOLDER
    assert format_currency("5$") == PLACEHOLDER
    assert format_currency("$-") == PLACEHOLDER


def test_format_duration():
    assert format_duration(45) == "45m"
    assert format_duration(60) == "1h"
    assert format_duration(90) == "1h 30m"
    assert format_duration(None) == PLACEHOLDER
    assert format_duration(-10) == PLACEHOLDER
    assert format_duration("x") == PLACEHOLDER


def test_format_booking_duration():
    assert format_booking_duration("2025-10-01T09:00:00Z", "2025-10-01T10:15:00Z") == "1h 15m"
    assert format_booking_duration(None, "2025-10-01T10:15:00Z") == PLACEHOLDER


def test_date_and_time_formatters():
    value = "2025-10-01T13:05:00Z"
    assert format_date(value, timezone.utc) == "Wednesday, October 1, 2025"
    assert format_time(value, timezone.utc) == "1:05 PM"
    assert format_time("2025-10-01T00:07:00Z", timezone.utc) == "12:07 AM"
    assert format_datetime(value, timezone.utc) == "Wednesday, October 1, 2025 at 1:05 PM"


def test_date_formatters_placeholder():
    assert format_date(None) == PLACEHOLDER
    assert format_time("garbage") == PLACEHOLDER
    assert format_datetime("") == PLACEHOLDER


def test_to_local_input():
    assert to_local_input("2025-10-02T03:30:00Z", NEW_YORK) == "2025-10-01T23:30"
    assert to_local_input(None) == ""
