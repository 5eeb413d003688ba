import locale
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Iterable, Mapping, Optional

from dateutil import parser

from .errors import FieldError, ValidationError
from .schemas import BookingStatus

logger = logging.getLogger(__name__)

ALL = "all"
SORT_PARAM = "sortBy"
PAGE_PARAM = "page"


@dataclass(frozen=True)
class FilterDirective:
    field: str
    value: Any
    method: str = "eq"


@dataclass(frozen=True)
class SortDirective:
    field: str
    direction: str = "asc"

    @property
    def ascending(self) -> bool:
        return self.direction == "asc"

    def __str__(self):
        return f"{self.field}-{self.direction}"


@dataclass(frozen=True)
class QueryDirective:
    filter: Optional[FilterDirective] = None
    sort: Optional[SortDirective] = None
    page: Optional[int] = None

    def cache_variant(self) -> str:
        parts = []
        if self.filter:
            parts.append(f"f={self.filter.field}.{self.filter.method}.{self.filter.value}")
        if self.sort:
            parts.append(f"s={self.sort}")
        if self.page:
            parts.append(f"p={self.page}")
        return "|".join(parts) or "all"


@dataclass(frozen=True)
class SortField:
    attr: str
    kind: str  # text | number | date


@dataclass(frozen=True)
class Resource:
    name: str
    filter_param: str
    filters: Mapping[str, Callable[[Any], bool]]
    sort_fields: Mapping[str, SortField]
    default_sort: str


def _status_is(status: BookingStatus) -> Callable[[Any], bool]:
    return lambda booking: booking.status == status


BOOKINGS = Resource(
    name="bookings",
    filter_param="status",
    filters={s.value: _status_is(s) for s in BookingStatus},
    sort_fields={
        "startTime": SortField("start_time", "date"),
        "endTime": SortField("end_time", "date"),
        "created_at": SortField("created_at", "date"),
        "totalPrice": SortField("total_price", "number"),
        "numClients": SortField("num_clients", "number"),
        "status": SortField("status", "text"),
        "name": SortField("name", "text"),
    },
    default_sort="startTime-desc",
)

SERVICES = Resource(
    name="services",
    filter_param="discount",
    filters={
        "no-discount": lambda service: not service.discount,
        "with-discount": lambda service: (service.discount or 0) > 0,
    },
    sort_fields={
        "name": SortField("name", "text"),
        "category": SortField("category", "text"),
        "regularPrice": SortField("regular_price", "number"),
        "duration": SortField("duration", "number"),
        "discount": SortField("discount", "number"),
    },
    default_sort="name-asc",
)


def parse_sort(raw: str) -> tuple[str, str]:
    field, _, direction = raw.partition("-")
    return field, direction


def parse_directive(params: Mapping[str, str], resource: Resource) -> QueryDirective:
    """
    Parse URL search parameters into a QueryDirective.

    Raises ValidationError for unknown filter values, unknown sort fields
    and page numbers that are not positive integers.
    """
    errors = []

    flt = None
    raw_filter = params.get(resource.filter_param)
    if raw_filter and raw_filter != ALL:
        if raw_filter in resource.filters:
            flt = FilterDirective(resource.filter_param, raw_filter)
        else:
            errors.append(
                FieldError(resource.filter_param, f"Unknown {resource.filter_param} filter: {raw_filter}")
            )

    sort = None
    field, direction = parse_sort(params.get(SORT_PARAM) or resource.default_sort)
    if field in resource.sort_fields:
        sort = SortDirective(field, direction)
    else:
        errors.append(FieldError(SORT_PARAM, f"Cannot sort {resource.name} by {field}"))

    page = None
    raw_page = params.get(PAGE_PARAM)
    if raw_page is not None:
        try:
            page = int(raw_page)
        except ValueError:
            page = 0
        if page < 1:
            errors.append(FieldError(PAGE_PARAM, "Page must be a positive integer"))

    if errors:
        raise ValidationError(errors)

    return QueryDirective(filter=flt, sort=sort, page=page)


# ---- in-memory engine ----

def _text_key(value) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        value = value.value
    return locale.strxfrm(str(value).casefold())


def _number_key(value) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _date_key(value) -> float:
    if value is None:
        return float("-inf")
    if isinstance(value, str):
        try:
            value = parser.isoparse(value)
        except ValueError:
            return float("-inf")
    if isinstance(value, datetime):
        return value.timestamp()
    return float("-inf")


_KEYS = {"text": _text_key, "number": _number_key, "date": _date_key}


def apply_filter(items: Iterable, flt: Optional[FilterDirective], resource: Resource) -> list:
    items = list(items)
    if flt is None or flt.value == ALL:
        return items

    predicate = resource.filters.get(flt.value)
    if predicate is None:
        logger.warning("Unknown %s filter %r; returning all %s", flt.field, flt.value, resource.name)
        return items
    return [item for item in items if predicate(item)]


def apply_sort(items: Iterable, sort: Optional[SortDirective], resource: Resource) -> list:
    items = list(items)
    if sort is None:
        return items

    field_spec = resource.sort_fields.get(sort.field)
    if field_spec is None:
        logger.warning("Unknown sort field %r for %s; order unchanged", sort.field, resource.name)
        return items

    key = _KEYS[field_spec.kind]
    # sorted() is stable in both directions, ties keep fetch order
    return sorted(items, key=lambda item: key(getattr(item, field_spec.attr, None)), reverse=not sort.ascending)


def paginate(items: list, page: Optional[int], page_size: int) -> list:
    if not page:
        return items
    start = (page - 1) * page_size
    return items[start:start + page_size]


def apply_directive(items: Iterable, directive: Optional[QueryDirective], resource: Resource) -> list:
    if directive is None:
        return list(items)
    return apply_sort(apply_filter(items, directive.filter, resource), directive.sort, resource)
