"""Django ORM implementation of the Zone repository.

Error handling follows the Null Object pattern: look-ups return ``None``
instead of raising; the Service Layer decides how to report a missing zone.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.zones.models import DeliveryZone
from modules.zones.repositories.interfaces import IZoneRepository

logger = structlog.get_logger(__name__)


class ZoneDjangoRepository(IZoneRepository):
    """Concrete zone repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[DeliveryZone]:
        try:
            return DeliveryZone.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_merchant(self, id: str, merchant_id: str) -> Optional[DeliveryZone]:
        try:
            return (
                DeliveryZone.objects.alive()
                .filter(id=id, merchant_id=merchant_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[DeliveryZone]:
        queryset = DeliveryZone.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def list_live(self, merchant_id: Optional[str] = None) -> List[DeliveryZone]:
        filters = {"merchant_id": merchant_id} if merchant_id else None
        return self.list(filters)

    @transaction.atomic
    def save(self, entity: DeliveryZone) -> DeliveryZone:
        is_new = entity._state.adding
        entity.save()
        logger.info("zone.saved", zone_id=str(entity.id), is_new=is_new)
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        zone = self.get_by_id(id)
        if not zone:
            return False
        zone.delete()
        logger.info("zone.soft_deleted", zone_id=str(id))
        return True

    def is_referenced_by_open_orders(self, id: str) -> bool:
        from modules.orders.constants import OrderStatus
        from modules.orders.models import Order

        return Order.objects.filter(
            zone_id=id,
            status__in=[OrderStatus.PENDING, OrderStatus.SHIPPING],
        ).exists()
