import logging
from dataclasses import dataclass, field
from datetime import tzinfo
from enum import Enum

from . import bookings_api
from .cache import CollectionCache
from .drafts import BookingDraft
from .errors import DataAccessError, FieldError, NotFoundError, SalonAdminError
from .schemas import Booking, BookingStatus
from .store import StoreClient

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "Another change to this booking is still being saved"
RELOAD_FAILED_SUFFIX = "but the latest details could not be loaded"


class ViewState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    EDITING = "editing"
    CONFIRMING_DELETE = "confirming_delete"
    ERROR = "error"
    DELETED = "deleted"


class InvalidTransition(SalonAdminError):
    pass


@dataclass
class MutationResult:
    ok: bool
    message: str
    booking: Booking | None = None
    field_errors: list[FieldError] = field(default_factory=list)


class BookingDetailWorkflow:
    """
    State of one booking detail view.

    LOADING -> LOADED -> {EDITING, CONFIRMING_DELETE} -> LOADED, with
    LOADING -> ERROR when the fetch fails and CONFIRMING_DELETE -> DELETED
    once the delete went through.

    Mutations return a MutationResult instead of notifying anyone; the
    caller decides how to surface it. After close() every response that
    is still in flight is dropped without touching state.
    """

    def __init__(
        self,
        store: StoreClient,
        booking_id: int,
        *,
        cache: CollectionCache | None = None,
        tz: tzinfo | None = None,
    ):
        self.store = store
        self.booking_id = booking_id
        self.cache = cache
        self.tz = tz

        self.state = ViewState.LOADING
        self.booking: Booking | None = None
        self.error: str | None = None
        self.not_found = False
        self.draft: BookingDraft | None = None
        self.field_errors: list[FieldError] = []
        self.busy = False

        self._draft_origin: BookingDraft | None = None
        self._mounted = True
        self._fetch_seq = 0

    @property
    def is_mounted(self) -> bool:
        return self._mounted

    def close(self) -> None:
        self._mounted = False

    def _is_current(self, seq: int) -> bool:
        return self._mounted and seq == self._fetch_seq

    def _require(self, action: str, *states: ViewState) -> None:
        if self.state not in states:
            raise InvalidTransition(f"Cannot {action} while {self.state.value}")

    # -------- fetch --------

    async def load(self) -> Booking | None:
        self._fetch_seq += 1
        seq = self._fetch_seq
        if self.booking is None:
            self.state = ViewState.LOADING

        try:
            booking = await bookings_api.get_booking(self.store, self.booking_id)
        except (NotFoundError, DataAccessError) as e:
            if not self._is_current(seq):
                return None
            logger.warning("Booking %s could not be loaded: %s", self.booking_id, e)
            self.error = str(e)
            self.not_found = isinstance(e, NotFoundError)
            self.state = ViewState.ERROR
            return None

        if not self._is_current(seq):
            logger.debug("Discarding stale response for booking %s", self.booking_id)
            return None

        self.booking = booking
        self.error = None
        if self.state in (ViewState.LOADING, ViewState.ERROR):
            self.state = ViewState.LOADED
        return booking

    # -------- edit --------

    def begin_edit(self) -> BookingDraft:
        self._require("edit", ViewState.LOADED)
        self.draft = BookingDraft.from_booking(self.booking, self.tz)
        self._draft_origin = BookingDraft.from_booking(self.booking, self.tz)
        self.field_errors = []
        self.state = ViewState.EDITING
        return self.draft

    def cancel_edit(self) -> None:
        self._require("cancel edit", ViewState.EDITING)
        self.draft = None
        self._draft_origin = None
        self.field_errors = []
        self.state = ViewState.LOADED

    async def submit_edit(self, draft: BookingDraft | None = None) -> MutationResult:
        self._require("submit edit", ViewState.EDITING)
        if self.busy:
            return MutationResult(False, BUSY_MESSAGE, booking=self.booking)

        draft = draft or self.draft
        errors = draft.validate()
        if errors:
            self.field_errors = errors
            return MutationResult(False, "Please correct the highlighted fields", self.booking, errors)

        changes = draft.changed_fields(self._draft_origin)
        if not changes:
            self.cancel_edit()
            return MutationResult(True, "No changes to save", booking=self.booking)

        self.busy = True
        try:
            try:
                await bookings_api.update_booking(self.store, self.booking_id, changes, cache=self.cache)
            except DataAccessError as e:
                if self._mounted:
                    self.field_errors = [FieldError("submit", e.message)]
                return MutationResult(False, e.message, self.booking, [FieldError("submit", e.message)])

            if not self._mounted:
                return MutationResult(True, "Booking updated")

            reloaded = await self.load()
        finally:
            self.busy = False

        if not self._mounted:
            return MutationResult(True, "Booking updated")

        self.draft = None
        self._draft_origin = None
        self.field_errors = []
        if reloaded is None:
            # the write went through; only the refetch failed (state is ERROR)
            return MutationResult(True, f"Booking updated, {RELOAD_FAILED_SUFFIX}")
        self.state = ViewState.LOADED
        return MutationResult(True, "Booking updated", booking=reloaded)

    async def complete(self) -> MutationResult:
        self._require("complete", ViewState.LOADED)
        if self.busy:
            return MutationResult(False, BUSY_MESSAGE, booking=self.booking)

        self.busy = True
        try:
            try:
                await bookings_api.update_booking(
                    self.store,
                    self.booking_id,
                    {"status": BookingStatus.COMPLETED.value},
                    cache=self.cache,
                )
            except DataAccessError as e:
                return MutationResult(False, e.message, booking=self.booking)

            if not self._mounted:
                return MutationResult(True, "Booking marked as completed")
            reloaded = await self.load()
        finally:
            self.busy = False

        if reloaded is None and self._mounted:
            return MutationResult(True, f"Booking marked as completed, {RELOAD_FAILED_SUFFIX}")
        return MutationResult(True, "Booking marked as completed", booking=reloaded)

    # -------- delete --------

    def request_delete(self) -> None:
        self._require("delete", ViewState.LOADED)
        self.state = ViewState.CONFIRMING_DELETE

    def cancel_delete(self) -> None:
        self._require("cancel delete", ViewState.CONFIRMING_DELETE)
        self.state = ViewState.LOADED

    async def confirm_delete(self) -> MutationResult:
        self._require("confirm delete", ViewState.CONFIRMING_DELETE)
        if self.busy:
            return MutationResult(False, BUSY_MESSAGE, booking=self.booking)

        self.busy = True
        try:
            await bookings_api.delete_booking(self.store, self.booking_id, cache=self.cache)
        except DataAccessError as e:
            if self._mounted:
                self.state = ViewState.LOADED
            return MutationResult(False, e.message, booking=self.booking)
        finally:
            self.busy = False

        if self._mounted:
            self.state = ViewState.DELETED
        return MutationResult(True, "Booking deleted")
