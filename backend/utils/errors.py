"""Error taxonomy shared by the revenue-share services.

Each error carries the HTTP status the API layer reports it with, so route
handlers translate them without a lookup table.
"""


class RevenueShareError(Exception):
    """Base class for revenue-share domain failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidArgumentError(RevenueShareError, ValueError):
    """Malformed or out-of-range input (e.g. non-positive base revenue)."""

    status_code = 400


class NotFoundError(RevenueShareError, LookupError):
    """Unknown tier level, provider, payout, or missing tier definition."""

    status_code = 404


class InvalidStateError(RevenueShareError):
    """Illegal payout status transition."""

    status_code = 409


class LimitExceededError(RevenueShareError):
    """Payout retry budget exhausted."""

    status_code = 422
