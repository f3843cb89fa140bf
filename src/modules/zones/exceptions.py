"""Zone domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations


class ZoneNotFound(Exception):
    """The requested zone does not exist, was deleted, or belongs to another merchant."""


class InvalidZoneShape(Exception):
    """Polygon with fewer than three points, or circle without a positive radius."""


class ZoneInUse(Exception):
    """The zone validated an order that is still pending or shipping."""
