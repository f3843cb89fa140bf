"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class OrderNotFound(Exception):
    """The requested order does not exist."""


class InvalidOrderStatus(Exception):
    """A conditional transition found the order in an unexpected status."""


class OutOfDeliveryRange(Exception):
    """The recipient coordinate is not covered by any delivery zone."""


class NotOrderOwner(Exception):
    """The requesting party is not allowed to act on this order."""


class TransientStorageFailure(Exception):
    """A retryable storage error (connection lost, lock timeout, ...)."""
