"""Domain events for the Orders bounded context.

``payload`` carries ``old_status``/``new_status`` for transitions and
``reason`` for anomaly flags.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderCreated(DomainEvent):
    """Raised when an order is created."""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised after any committed status transition."""


@dataclass(frozen=True)
class OrderFlaggedAbnormal(DomainEvent):
    """Raised when the anomaly sweep flags an order."""
