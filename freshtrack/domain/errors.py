"""
Error taxonomy for the inventory core.

I/O-bound components record these on their state instead of letting them
cross the component boundary; the HTTP shell translates the ones that do
reach it.
"""
from typing import Optional


class BackendError(Exception):
    """The remote backend rejected or could not serve a request."""

    def __init__(self, message: str, status_code: int = 502):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class TransientFetchError(BackendError):
    """Backend unavailable (transport failure or 5xx after retries)."""

    def __init__(self, message: str, status_code: int = 503):
        super().__init__(message, status_code=status_code)


class SubscriptionError(Exception):
    """The change feed subscription could not be established."""


class PartialAggregationError(Exception):
    """One alert source failed while the aggregation continued without it."""

    def __init__(self, source_id: str, cause: Optional[BaseException] = None):
        super().__init__(f"Alert source '{source_id}' failed: {cause}")
        self.source_id = source_id
        self.cause = cause


class InvalidTransitionError(ValueError):
    """A batch status change that the lifecycle does not allow."""
