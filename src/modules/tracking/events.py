"""Messages fanned out to live viewers of an order.

``position_update`` events carry a per-order ``sequence`` (starting at 1)
so a viewer behind an unordered transport can reassemble them with
``ReorderBuffer``.  ``status_update`` events are unsequenced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.domain.geo import Coordinate

POSITION_UPDATE = "position_update"
STATUS_UPDATE = "status_update"


@dataclass(frozen=True)
class TrackingEvent:
    type: str
    order_id: str
    coordinates: Optional[Coordinate] = None
    status: Optional[str] = None
    message: Optional[str] = None
    sequence: Optional[int] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_message(self) -> Dict[str, Any]:
        """Wire form sent over push transports."""
        message: Dict[str, Any] = {
            "type": self.type,
            "orderId": self.order_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.type == POSITION_UPDATE:
            message["coordinates"] = list(self.coordinates) if self.coordinates else None
            message["sequence"] = self.sequence
        else:
            message["status"] = self.status
            message["message"] = self.message
        return message
