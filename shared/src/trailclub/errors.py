"""Error taxonomy for the billing core.

Callers match on the concrete class. ``DuplicateEventError`` is an expected
outcome of at-least-once webhook delivery and should be acknowledged, not
reported as a failure.
"""

from __future__ import annotations

from datetime import datetime


class BillingCoreError(Exception):
    """Base class for all billing core errors."""


class DuplicateEventError(BillingCoreError):
    """The webhook event was already processed or is being processed."""

    def __init__(self, event_id: str, processed_at: datetime | None = None) -> None:
        self.event_id = event_id
        self.processed_at = processed_at
        when = processed_at.isoformat() if processed_at else "unknown time"
        super().__init__(f"Webhook event {event_id} already claimed ({when})")


class StorageError(BillingCoreError):
    """The database could not complete an operation."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)


class MalformedUpstreamDataError(BillingCoreError):
    """The payment processor returned data we refuse to default."""

    def __init__(self, resource: str, resource_id: str, detail: str) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"Malformed {resource} {resource_id}: {detail}")


class PaymentProviderError(BillingCoreError):
    """A call to the payment processor failed."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        super().__init__(message)
