import logging

from pydantic import ValidationError as ModelValidationError

from .errors import DataAccessError
from .store import StoreResult

logger = logging.getLogger(__name__)


def unwrap(result: StoreResult, message: str):
    """Return the result payload or raise DataAccessError with a fixed message."""
    if result.error:
        logger.error("%s: %s", message, result.error)
        raise DataAccessError(message)
    return result.data


def parse_rows(model, rows, message: str) -> list:
    try:
        return [model.model_validate(row) for row in (rows or [])]
    except ModelValidationError as e:
        logger.error("%s: malformed rows: %s", message, e)
        raise DataAccessError(message) from e


def parse_row(model, row, message: str):
    if not isinstance(row, dict):
        logger.error("%s: expected a single row, got %r", message, type(row).__name__)
        raise DataAccessError(message)
    return parse_rows(model, [row], message)[0]
