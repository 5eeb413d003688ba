from dataclasses import dataclass, field
from datetime import date, datetime, time, tzinfo
from typing import Optional

from .errors import FieldError
from .formatting import to_local
from .schemas import Booking, BookingStatus, Service

REQUIRED = "This field is required"


@dataclass
class BookingDraft:
    """Editable copy of a booking, owned by the detail view until submit or cancel."""

    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    num_clients: int = 1
    status: BookingStatus = BookingStatus.CONFIRMED
    notes: str = ""
    total_price: float = 0.0
    tz: Optional[tzinfo] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_booking(cls, booking: Booking, tz: tzinfo | None = None) -> "BookingDraft":
        return cls(
            start_time=to_local(booking.start_time, tz),
            end_time=to_local(booking.end_time, tz),
            num_clients=booking.num_clients or 1,
            status=booking.status or BookingStatus.CONFIRMED,
            notes=booking.notes or "",
            total_price=booking.total_price or 0.0,
            tz=tz,
        )

    def validate(self) -> list[FieldError]:
        errors = []
        start = to_local(self.start_time, self.tz)
        end = to_local(self.end_time, self.tz)

        if start is None:
            errors.append(FieldError("startTime", "Start time is required"))
        if end is None:
            errors.append(FieldError("endTime", "End time is required"))
        if start is not None and end is not None and start >= end:
            errors.append(FieldError("endTime", "End time must be after start time"))

        if self.status is None:
            errors.append(FieldError("status", "Status is required"))
        else:
            try:
                BookingStatus(self.status)
            except ValueError:
                errors.append(FieldError("status", f"Unknown status: {self.status}"))

        if self.num_clients is None or self.num_clients < 1:
            errors.append(FieldError("numClients", "At least one client is required"))
        if self.total_price is not None and self.total_price < 0:
            errors.append(FieldError("totalPrice", "Total price cannot be negative"))
        return errors

    def to_fields(self) -> dict:
        start = to_local(self.start_time, self.tz)
        end = to_local(self.end_time, self.tz)
        return {
            "startTime": start.isoformat() if start else None,
            "endTime": end.isoformat() if end else None,
            "numClients": int(self.num_clients),
            "status": BookingStatus(self.status).value,
            "notes": self.notes,
            "totalPrice": float(self.total_price or 0),
        }

    def changed_fields(self, original: "BookingDraft") -> dict:
        """Wire fields whose value differs from the draft the edit started from."""
        base = original.to_fields()
        return {k: v for k, v in self.to_fields().items() if base.get(k) != v}


@dataclass
class ServiceDraft:
    name: str = ""
    regular_price: Optional[float] = None
    duration: Optional[int] = None
    category: str = ""
    discount: float = 0.0
    description: Optional[str] = None
    image: Optional[str] = None

    @classmethod
    def from_service(cls, service: Service) -> "ServiceDraft":
        return cls(
            name=service.name or "",
            regular_price=service.regular_price,
            duration=service.duration,
            category=service.category or "",
            discount=service.discount or 0.0,
            description=service.description,
            image=service.image,
        )

    def validate(self) -> list[FieldError]:
        errors = []
        if not (self.name or "").strip():
            errors.append(FieldError("name", REQUIRED))

        if self.regular_price is None:
            errors.append(FieldError("regularPrice", REQUIRED))
        elif self.regular_price < 1:
            errors.append(FieldError("regularPrice", "Price should be at least 1"))

        if self.duration is None:
            errors.append(FieldError("duration", REQUIRED))
        elif self.duration < 1:
            errors.append(FieldError("duration", "Duration should be at least 1 minute"))

        if not (self.category or "").strip():
            errors.append(FieldError("category", REQUIRED))

        discount = self.discount or 0
        if discount < 0:
            errors.append(FieldError("discount", "Discount cannot be negative"))
        elif self.regular_price is not None and discount > self.regular_price:
            errors.append(FieldError("discount", "Discount should be less than the regular price"))
        return errors

    def to_fields(self) -> dict:
        fields = {
            "name": self.name.strip(),
            "regularPrice": self.regular_price,
            "duration": self.duration,
            "category": self.category.strip(),
            "discount": self.discount or 0,
        }
        if self.description is not None:
            fields["description"] = self.description
        if self.image is not None:
            fields["image"] = self.image
        return fields


@dataclass
class ShiftDraft:
    """Roster form state; a shift is either weekly (day_of_week) or one-off (specific_date)."""

    staff_id: Optional[int | str] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    day_of_week: Optional[int] = None
    specific_date: Optional[date] = None
    notes: Optional[str] = None

    @property
    def is_recurring(self) -> bool:
        return self.day_of_week is not None

    def validate(self) -> list[FieldError]:
        errors = []
        if self.staff_id in (None, ""):
            errors.append(FieldError("staffId", "Staff member is required"))
        if self.start_time is None:
            errors.append(FieldError("startTime", "Start time is required"))
        if self.end_time is None:
            errors.append(FieldError("endTime", "End time is required"))
        if self.start_time is not None and self.end_time is not None and self.start_time >= self.end_time:
            errors.append(FieldError("endTime", "End time must be after start time"))

        if self.day_of_week is None and self.specific_date is None:
            errors.append(FieldError("dayOfWeek", "Either day of week or specific date must be provided"))
        elif self.day_of_week is not None and self.specific_date is not None:
            errors.append(FieldError("specificDate", "Cannot set both day of week and specific date"))
        elif self.day_of_week is not None and not 0 <= self.day_of_week <= 6:
            errors.append(FieldError("dayOfWeek", "Day of week must be between 0 (Sunday) and 6"))
        return errors

    def to_fields(self) -> dict:
        return {
            "staffId": self.staff_id,
            "startTime": self.start_time.isoformat() if self.start_time else None,
            "endTime": self.end_time.isoformat() if self.end_time else None,
            "dayOfWeek": self.day_of_week if self.is_recurring else None,
            "specificDate": None if self.is_recurring or self.specific_date is None else self.specific_date.isoformat(),
            "notes": self.notes or None,
        }
