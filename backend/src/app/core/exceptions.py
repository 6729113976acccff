"""Domain errors raised by the auction core.

Every error carries a machine-readable ``code``, a human message and the HTTP
status the API layer renders it with.
"""


class AuctionError(Exception):
    """Base class for all auction core errors."""

    status_code: int = 400
    default_code: str = "AUCTION_ERROR"

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_detail(self) -> dict[str, str]:
        return {"code": self.code, "message": self.message}


class ValidationError(AuctionError):
    """Raised for malformed input, before anything is persisted."""

    status_code = 400
    default_code = "VALIDATION_ERROR"


class NotFoundError(AuctionError):
    """Raised when an auction id is unknown."""

    status_code = 404
    default_code = "AUCTION_NOT_FOUND"


class StateConflictError(AuctionError):
    """Raised when the auction's current state forbids the operation."""

    status_code = 409
    default_code = "STATE_CONFLICT"

    # Self-dealing is a permission problem rather than a timing one
    FORBIDDEN_CODES = frozenset({"SELF_BID", "SELF_PURCHASE"})

    def __init__(self, code: str, message: str):
        super().__init__(message, code)
        if code in self.FORBIDDEN_CODES:
            self.status_code = 403


class PermissionDeniedError(AuctionError):
    """Raised when the caller may not act on the auction."""

    status_code = 403
    default_code = "PERMISSION_DENIED"


class ConcurrencyError(AuctionError):
    """Raised on a transaction serialization conflict. Transient, retryable."""

    status_code = 409
    default_code = "CONCURRENT_UPDATE"


class PersistenceError(AuctionError):
    """Raised when the data store cannot be reached."""

    status_code = 503
    default_code = "STORE_UNAVAILABLE"
