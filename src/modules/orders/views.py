"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.

The authenticated user's primary key is the ``user_id`` when placing or
confirming an order and the ``merchant_id`` when dispatching one.
"""

from __future__ import annotations

from django.db.models import Q
from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.dtos import CreateOrderDTO, ShipOrderDTO
from modules.orders.exceptions import (
    InvalidOrderStatus,
    NotOrderOwner,
    OrderNotFound,
    OutOfDeliveryRange,
    TransientStorageFailure,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    MerchantStatisticsSerializer,
    OrderListSerializer,
    OrderSerializer,
    ShipOrderSerializer,
)
from modules.orders.services import OrderService
from modules.zones.repositories.django_repository import ZoneDjangoRepository


def _error(detail: str, code: int) -> Response:
    return Response({"detail": detail}, status=code)


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``; all writes go through the
    service/repository layer.
    """

    queryset = Order.objects.all()
    filterset_class = OrderFilter
    search_fields = ["recipient_name", "recipient_address"]
    ordering_fields = ["created_at", "amount", "status", "last_update_time"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            zone_repository=ZoneDjangoRepository(),
        )

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scopes per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def _party_id(self, request: Request) -> str:
        return str(request.user.pk)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Rejects recipients outside the merchant's delivery zones with 400.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = CreateOrderDTO(
                merchant_id=data["merchant_id"],
                user_id=self._party_id(request),
                amount=data["amount"],
                recipient_name=data["recipient_name"],
                recipient_address=data["recipient_address"],
                recipient_coordinate=tuple(data["recipient_coordinate"]),
                simulated_fault=data.get("simulated_fault"),
            )
        except (PydanticValidationError, ValueError) as exc:
            return _error(str(exc), status.HTTP_400_BAD_REQUEST)

        try:
            order = self._service.create_order(dto)
        except OutOfDeliveryRange as exc:
            return _error(str(exc), status.HTTP_400_BAD_REQUEST)
        except TransientStorageFailure:
            return _error("Storage temporarily unavailable.", status.HTTP_503_SERVICE_UNAVAILABLE)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        party_id = self._party_id(self.request)
        return Order.objects.filter(Q(merchant_id=party_id) | Q(user_id=party_id))

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Orders where the caller is the merchant or the user.  Filtering
        is handled by ``OrderFilter``; results are paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request, view=self)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        try:
            order = self._service.get_order(pk, party_id=self._party_id(request))
        except OrderNotFound:
            return _error("Order not found.", status.HTTP_404_NOT_FOUND)
        except TransientStorageFailure:
            return _error(
                "Storage temporarily unavailable.", status.HTTP_503_SERVICE_UNAVAILABLE
            )

        context = {"abnormal_explanation": None}
        if order.is_abnormal:
            context["abnormal_explanation"] = self._service.get_anomaly_explanation(order.id)
        return Response(OrderSerializer(order, context=context).data)

    @action(detail=False, methods=["get"])
    def statistics(self, request: Request) -> Response:
        """GET /api/v1/orders/statistics/ for the calling merchant."""
        stats = self._service.merchant_statistics(self._party_id(request))
        return Response(MerchantStatisticsSerializer(stats.model_dump()).data)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def ship(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/ship/

        Attaches a route and rule; only the order's merchant may ship it.
        """
        serializer = ShipOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            dto = ShipOrderDTO(
                rule_id=serializer.validated_data["rule_id"],
                route_path=[tuple(p) for p in serializer.validated_data["route_path"]],
            )
        except (PydanticValidationError, ValueError) as exc:
            return _error(str(exc), status.HTTP_400_BAD_REQUEST)

        return self._run_transition(
            lambda: self._service.attach_route_and_ship(
                pk, dto, merchant_id=self._party_id(request)
            )
        )

    @action(detail=True, methods=["post"])
    def confirm(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/confirm/

        The recipient confirms delivery of an ``arrived`` order.
        """
        return self._run_transition(
            lambda: self._service.confirm_delivery(pk, self._party_id(request))
        )

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/"""
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        return self._run_transition(
            lambda: self._service.cancel_order(
                pk,
                notes=serializer.validated_data["notes"],
                requested_by=self._party_id(request),
            )
        )

    def _run_transition(self, operation) -> Response:
        try:
            order = operation()
        except OrderNotFound:
            return _error("Order not found.", status.HTTP_404_NOT_FOUND)
        except NotOrderOwner:
            return _error(
                "You are not allowed to act on this order.", status.HTTP_403_FORBIDDEN
            )
        except InvalidOrderStatus as exc:
            return _error(str(exc), status.HTTP_409_CONFLICT)
        except TransientStorageFailure:
            return _error(
                "Storage temporarily unavailable.", status.HTTP_503_SERVICE_UNAVAILABLE
            )

        order = self._service.get_order(order.id)
        return Response(OrderSerializer(order).data)
