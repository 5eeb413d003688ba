from dataclasses import dataclass


class SalonAdminError(Exception):
    pass


class NotFoundError(SalonAdminError):
    """Raised when a lookup by id returns no row."""


class DataAccessError(SalonAdminError):
    """
    Raised by the data access layer when the store reports a failure.

    The message is fixed per operation and safe to show to the user;
    the raw store error is only ever logged.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


@dataclass(frozen=True)
class FieldError:
    field: str
    message: str


class ValidationError(SalonAdminError):
    """Raised when client-side field checks fail, before any store call."""

    def __init__(self, errors: list[FieldError]):
        self.errors = list(errors)
        super().__init__("; ".join(f"{e.field}: {e.message}" for e in self.errors))

    def as_dict(self) -> dict[str, str]:
        return {e.field: e.message for e in self.errors}
