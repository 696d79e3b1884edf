"""
Domain errors raised by the quote services.

Routes translate these into HTTP responses via the handlers registered in
``main.create_app``; services never raise ``HTTPException`` themselves.
"""
from typing import Iterable, List, Optional


class QuoteHubError(Exception):
    status_code = 500
    default_message = "Internal error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"detail": self.message}


class ValidationError(QuoteHubError):
    """Malformed or out-of-range input. Raised before any side effect."""

    status_code = 422
    default_message = "Invalid input"

    def __init__(self, fields: Iterable[str], message: Optional[str] = None):
        self.fields: List[str] = sorted(set(fields))
        super().__init__(message or f"Invalid value for: {', '.join(self.fields)}")

    def to_dict(self) -> dict:
        return {"detail": self.message, "fields": self.fields}


class NotFound(QuoteHubError):
    # Same message whether the entity never existed or its parent chain is broken
    status_code = 404
    default_message = "Not found"


class Forbidden(QuoteHubError):
    status_code = 403
    default_message = "Forbidden"


class MalformedDecimal(QuoteHubError):
    """A stored decimal string could not be parsed. Data-integrity fault."""

    status_code = 500
    default_message = "Stored numeric value is corrupt"

    def __init__(self, value, message: Optional[str] = None):
        self.value = value
        super().__init__(message)


class PersistenceError(QuoteHubError):
    status_code = 503
    default_message = "Could not save changes"
