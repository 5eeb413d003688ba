import json
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    # legacy check-in/out rows
    UNCONFIRMED = "unconfirmed"
    CHECKED_IN = "checked-in"
    CHECKED_OUT = "checked-out"


class StoreModel(BaseModel):
    """Row shape as the store returns it; camelCase columns map to aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self, exclude_none: bool = True) -> dict:
        return self.model_dump(by_alias=True, exclude_none=exclude_none, mode="json")


class Client(StoreModel):
    id: Optional[int] = None
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: Optional[str] = None
    phone: Optional[str] = None


class Staff(StoreModel):
    id: Optional[Union[int, str]] = None
    name: Optional[str] = None


class Service(StoreModel):
    id: Optional[int] = None
    name: Optional[str] = None
    duration: Optional[int] = None
    regular_price: Optional[float] = Field(default=None, alias="regularPrice")
    category: Optional[str] = None
    discount: Optional[float] = None
    image: Optional[str] = None
    description: Optional[str] = None


# ---- service references ----

@dataclass(frozen=True)
class ManyServices:
    ids: tuple


@dataclass(frozen=True)
class SingleService:
    id: int


ServiceRef = Union[ManyServices, SingleService]


class Booking(StoreModel):
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    client_id: Optional[int] = Field(default=None, alias="clientId")
    service_ids: Optional[List[int]] = Field(default=None, alias="serviceIds")
    service_id: Optional[int] = Field(default=None, alias="serviceId")
    staff_id: Optional[Union[int, str]] = Field(default=None, alias="staffId")
    num_clients: Optional[int] = Field(default=None, alias="numClients")
    total_price: Optional[float] = Field(default=None, alias="totalPrice")
    status: Optional[BookingStatus] = None
    notes: Optional[str] = None
    is_paid: Optional[bool] = Field(default=None, alias="isPaid")
    name: Optional[str] = None
    phone: Optional[str] = None

    # embedded relations
    client: Optional[Client] = None
    staff: Optional[Staff] = None
    services: List[Service] = Field(default_factory=list)

    @field_validator("service_ids", mode="before")
    @classmethod
    def _decode_service_ids(cls, v):
        # some rows carry the array JSON-encoded
        if isinstance(v, str):
            return json.loads(v) if v.strip() else None
        return v

    @field_validator("services", mode="before")
    @classmethod
    def _services_as_list(cls, v):
        if v is None:
            return []
        if isinstance(v, dict):
            return [v]
        return v

    def service_ref(self) -> Optional[ServiceRef]:
        if self.service_ids is not None:
            return ManyServices(tuple(self.service_ids))
        if self.service_id is not None:
            return SingleService(self.service_id)
        return None


class Shift(StoreModel):
    """
    A staff roster entry: either recurring weekly (`day_of_week`, 0 = Sunday)
    or pinned to one `specific_date`, never both.
    """

    id: Optional[int] = None
    staff_id: Optional[Union[int, str]] = Field(default=None, alias="staffId")
    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek")
    specific_date: Optional[date] = Field(default=None, alias="specificDate")
    start_time: Optional[time] = Field(default=None, alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    notes: Optional[str] = None
    staff: Optional[Staff] = None

    # set when a recurring shift is laid out onto a concrete day
    effective_date: Optional[date] = Field(default=None, alias="effectiveDate")
    is_recurring: bool = Field(default=False, alias="isRecurring")

    @property
    def on_date(self) -> Optional[date]:
        return self.specific_date or self.effective_date

    def overlaps(self, start: time, end: time) -> bool:
        if self.start_time is None or self.end_time is None:
            return False
        return start < self.end_time and end > self.start_time

    def covers(self, start: time, end: time) -> bool:
        if self.start_time is None or self.end_time is None:
            return False
        return self.start_time <= start and end <= self.end_time


# ---- request bodies ----

class CreateBooking(StoreModel):
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    client_id: Optional[int] = Field(default=None, alias="clientId")
    service_ids: List[int] = Field(default_factory=list, alias="serviceIds")
    staff_id: Optional[Union[int, str]] = Field(default=None, alias="staffId")
    num_clients: int = Field(default=1, alias="numClients")
    total_price: Optional[float] = Field(default=None, alias="totalPrice")
    status: BookingStatus = BookingStatus.PENDING
    notes: Optional[str] = None
    is_paid: bool = Field(default=False, alias="isPaid")
    name: Optional[str] = None
    phone: Optional[str] = None


class EditBooking(StoreModel):
    start_time: Optional[datetime] = Field(default=None, alias="startTime")
    end_time: Optional[datetime] = Field(default=None, alias="endTime")
    num_clients: Optional[int] = Field(default=None, alias="numClients")
    total_price: Optional[float] = Field(default=None, alias="totalPrice")
    status: Optional[BookingStatus] = None
    notes: Optional[str] = None


class BulkStatusUpdate(BaseModel):
    ids: List[int]
    status: BookingStatus = BookingStatus.CONFIRMED


class ServiceIn(StoreModel):
    name: Optional[str] = None
    duration: Optional[int] = None
    regular_price: Optional[float] = Field(default=None, alias="regularPrice")
    category: Optional[str] = None
    discount: Optional[float] = None
    image: Optional[str] = None
    description: Optional[str] = None


class ClientIn(StoreModel):
    full_name: str = Field(alias="fullName")
    email: Optional[str] = None
    phone: Optional[str] = None


class ShiftIn(StoreModel):
    staff_id: Optional[Union[int, str]] = Field(default=None, alias="staffId")
    day_of_week: Optional[int] = Field(default=None, alias="dayOfWeek", ge=0, le=6)
    specific_date: Optional[date] = Field(default=None, alias="specificDate")
    start_time: Optional[time] = Field(default=None, alias="startTime")
    end_time: Optional[time] = Field(default=None, alias="endTime")
    notes: Optional[str] = None


# ---- responses ----

class DashboardStats(BaseModel):
    today_count: int
    today_revenue: float
    today_pending: int
    today_confirmed: int
    total_count: int
    total_sales: float
    service_count: int = 0
