"""Zone URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.zones.views import ZoneViewSet

router = DefaultRouter(trailing_slash=True)
router.register("zones", ZoneViewSet, basename="zone")

urlpatterns = router.urls
