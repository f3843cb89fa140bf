"""Zone repository interface.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.zones.models import DeliveryZone


class IZoneRepository(IRepository["DeliveryZone"]):
    """Repository contract for delivery zones."""

    @abstractmethod
    def get_for_merchant(self, id: str, merchant_id: str) -> Optional[DeliveryZone]:
        """Retrieve a live zone owned by *merchant_id*."""

    @abstractmethod
    def list_live(self, merchant_id: Optional[str] = None) -> List[DeliveryZone]:
        """Live zones in match-priority order, optionally for one merchant."""

    @abstractmethod
    def save(self, entity: DeliveryZone) -> DeliveryZone:
        """Persist (create or update) a zone."""

    @abstractmethod
    def delete(self, id: str) -> bool:
        """Soft-delete a zone by ID."""

    @abstractmethod
    def is_referenced_by_open_orders(self, id: str) -> bool:
        """``True`` while a pending or shipping order was validated by the zone."""
