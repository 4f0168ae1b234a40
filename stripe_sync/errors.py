"""Exceptions raised by the Stripe Sync Engine.

Stripe API errors (``stripe.StripeError`` and subclasses) are not wrapped:
rate limits and connection failures propagate to the caller untouched.
"""

from typing import Optional

import stripe


class StripeSyncError(Exception):
    """Base class for every error raised by this package."""


class WebhookVerificationError(StripeSyncError):
    """The webhook payload or its signature could not be verified."""


class UnhandledEventError(StripeSyncError):
    """A webhook event type with no registered handler."""

    def __init__(self, event_type: str):
        super().__init__(f'Unhandled webhook event: {event_type}')
        self.event_type = event_type


class UnsupportedEntityError(StripeSyncError, ValueError):
    """A Stripe ID or object name that does not map to a mirrored entity."""


class StorageError(StripeSyncError):
    """A write or read against the mirror database failed."""

    def __init__(self, message: str, table: Optional[str] = None):
        super().__init__(message)
        self.table = table


def is_resource_missing(err: Exception) -> bool:
    """True when Stripe reports the requested object no longer exists."""
    return isinstance(err, stripe.InvalidRequestError) and err.code == 'resource_missing'
