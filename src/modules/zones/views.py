"""Zone API views.

Exposes the ``ZoneService`` via HTTP using DRF ViewSets.
The authenticated user acts as the merchant that owns the zones.
Domain exceptions are caught and translated into HTTP status codes.
"""

from __future__ import annotations

from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.zones.dtos import ZoneInputDTO
from modules.zones.exceptions import InvalidZoneShape, ZoneInUse, ZoneNotFound
from modules.zones.models import DeliveryZone
from modules.zones.repositories.django_repository import ZoneDjangoRepository
from modules.zones.serializers import (
    DeliveryCheckQuerySerializer,
    DeliveryCheckSerializer,
    ZoneInputSerializer,
    ZoneSerializer,
)
from modules.zones.services import ZoneService


class ZoneViewSet(GenericViewSet):
    """ViewSet for merchant delivery zones.

    Uses ``ZoneService`` with ``ZoneDjangoRepository`` (DIP).
    """

    queryset = DeliveryZone.objects.alive()
    serializer_class = ZoneSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = ZoneService(repository=ZoneDjangoRepository())

    def _merchant_id(self, request: Request) -> str:
        return str(request.user.pk)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/zones/"""
        zones = self._service.list_zones(self._merchant_id(request))

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(zones, request, view=self)
        serializer = ZoneSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/zones/{pk}/"""
        try:
            zone = self._service.get_zone(self._merchant_id(request), pk)
        except ZoneNotFound:
            return Response(
                {"detail": "Zone not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(ZoneSerializer(zone).data)

    # ------------------------------------------------------------------
    # Create / Update / Destroy
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/zones/"""
        dto = self._build_dto(request)
        if isinstance(dto, Response):
            return dto

        zone = self._service.create_zone(self._merchant_id(request), dto)
        return Response(ZoneSerializer(zone).data, status=status.HTTP_201_CREATED)

    def update(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/zones/{pk}/"""
        dto = self._build_dto(request)
        if isinstance(dto, Response):
            return dto

        try:
            zone = self._service.update_zone(self._merchant_id(request), pk, dto)
        except ZoneNotFound:
            return Response(
                {"detail": "Zone not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except ZoneInUse as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(ZoneSerializer(zone).data)

    def destroy(self, request: Request, pk: str | None = None) -> Response:
        """DELETE /api/v1/zones/{pk}/"""
        try:
            self._service.delete_zone(self._merchant_id(request), pk)
        except ZoneNotFound:
            return Response(
                {"detail": "Zone not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        except ZoneInUse as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)

    # ------------------------------------------------------------------
    # Delivery-range check
    # ------------------------------------------------------------------

    @action(detail=False, methods=["get"], url_path="check")
    def check(self, request: Request) -> Response:
        """GET /api/v1/zones/check/?lng=&lat=

        Answers whether the point is covered by one of the merchant's zones.
        """
        query = DeliveryCheckQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)

        result = self._service.find_delivery_rule(
            (query.validated_data["lng"], query.validated_data["lat"]),
            merchant_id=self._merchant_id(request),
        )
        return Response(DeliveryCheckSerializer(result.model_dump()).data)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build_dto(self, request: Request) -> ZoneInputDTO | Response:
        serializer = ZoneInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            return ZoneInputDTO(**serializer.validated_data)
        except (PydanticValidationError, InvalidZoneShape, ValueError) as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
