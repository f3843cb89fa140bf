"""Zone service layer (Use Cases).

Owns merchant delivery zones and answers "is this point deliverable,
and under which dispatch rule".

Business rules enforced:
- Zones are scoped by merchant; another merchant's zone reads as missing.
- A zone referenced by an in-flight (pending/shipping) order is immutable.
- Overlapping zones resolve to the first live match in priority order.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

import structlog
from django.db import transaction

from modules.zones.dtos import DeliveryCheckDTO
from modules.zones.exceptions import ZoneInUse, ZoneNotFound
from modules.zones.models import DeliveryZone
from modules.zones.shapes import shape_contains, shape_to_record

if TYPE_CHECKING:
    from modules.zones.dtos import ZoneInputDTO
    from modules.zones.repositories.interfaces import IZoneRepository

logger = structlog.get_logger(__name__)


class ZoneService:
    """Application service for zone use-cases.

    Receives an ``IZoneRepository`` via constructor injection (DIP).
    """

    def __init__(self, repository: IZoneRepository) -> None:
        self._repo = repository

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_zone(self, merchant_id: str, dto: ZoneInputDTO) -> DeliveryZone:
        zone = DeliveryZone(
            merchant_id=merchant_id,
            name=dto.name,
            description=dto.description,
            rule_id=dto.rule_id,
            **shape_to_record(dto.to_shape()),
        )
        zone = self._repo.save(zone)
        logger.info(
            "zone.created",
            zone_id=str(zone.id),
            merchant_id=merchant_id,
            shape_type=zone.shape_type,
            rule_id=zone.rule_id,
        )
        return zone

    @transaction.atomic
    def update_zone(
        self, merchant_id: str, zone_id: str, dto: ZoneInputDTO
    ) -> DeliveryZone:
        """Replace a zone's definition.

        Raises:
            ZoneNotFound: zone absent or owned by another merchant.
            ZoneInUse: an in-flight order was validated by this zone.
        """
        zone = self._get_owned(merchant_id, zone_id)
        self._ensure_not_in_use(zone)

        zone.name = dto.name
        zone.description = dto.description
        zone.rule_id = dto.rule_id
        for field, value in shape_to_record(dto.to_shape()).items():
            setattr(zone, field, value)

        zone = self._repo.save(zone)
        logger.info("zone.updated", zone_id=str(zone.id), merchant_id=merchant_id)
        return zone

    @transaction.atomic
    def delete_zone(self, merchant_id: str, zone_id: str) -> None:
        """Soft-delete a zone.

        Raises:
            ZoneNotFound: zone absent or owned by another merchant.
            ZoneInUse: an in-flight order was validated by this zone.
        """
        zone = self._get_owned(merchant_id, zone_id)
        self._ensure_not_in_use(zone)
        self._repo.delete(str(zone.id))
        logger.info("zone.deleted", zone_id=str(zone.id), merchant_id=merchant_id)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_zone(self, merchant_id: str, zone_id: str) -> DeliveryZone:
        return self._get_owned(merchant_id, zone_id)

    def list_zones(self, merchant_id: str) -> List[DeliveryZone]:
        return self._repo.list_live(merchant_id)

    def find_delivery_rule(
        self, point: Sequence[float], merchant_id: Optional[str] = None
    ) -> DeliveryCheckDTO:
        """Return the rule of the first live zone containing *point*."""
        for zone in self._repo.list_live(merchant_id):
            if shape_contains(zone.shape, point):
                logger.debug(
                    "zone.match",
                    zone_id=str(zone.id),
                    rule_id=zone.rule_id,
                    lng=point[0],
                    lat=point[1],
                )
                return DeliveryCheckDTO(
                    deliverable=True, rule_id=zone.rule_id, zone_id=zone.id
                )

        logger.info("zone.no_match", merchant_id=merchant_id, lng=point[0], lat=point[1])
        return DeliveryCheckDTO(deliverable=False)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get_owned(self, merchant_id: str, zone_id: str) -> DeliveryZone:
        zone = self._repo.get_for_merchant(zone_id, merchant_id)
        if not zone:
            raise ZoneNotFound(f"Zone {zone_id} not found.")
        return zone

    def _ensure_not_in_use(self, zone: DeliveryZone) -> None:
        if self._repo.is_referenced_by_open_orders(str(zone.id)):
            logger.warning("zone.in_use", zone_id=str(zone.id))
            raise ZoneInUse(
                f"Zone {zone.id} is referenced by pending or shipping orders."
            )
