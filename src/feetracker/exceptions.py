"""Custom exceptions for the pool fee tracker.

All service-layer exceptions live here so the HTTP layer and the
work-queue consumer can map them without importing service modules.
"""


class FeeTrackerError(Exception):
    """Base exception for all fee tracker errors."""


class UpstreamError(FeeTrackerError):
    """Raised when an external API call fails or returns unparseable data."""


class NotFoundError(FeeTrackerError):
    """Raised when a requested record (batch, transaction, price) does not exist."""


class ValidationError(FeeTrackerError):
    """Raised when a request is invalid for the current state of the data."""


class InvalidStatusTransition(FeeTrackerError):
    """Raised when a batch status change would move the lifecycle backwards."""
