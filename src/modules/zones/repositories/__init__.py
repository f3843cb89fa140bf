"""Zone repositories package."""

from modules.zones.repositories.django_repository import ZoneDjangoRepository
from modules.zones.repositories.interfaces import IZoneRepository

__all__ = ["IZoneRepository", "ZoneDjangoRepository"]
