from __future__ import annotations

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.orders.dtos import CreateOrderDTO, ShipOrderDTO
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.zones.dtos import ZoneInputDTO
from modules.zones.repositories.django_repository import ZoneDjangoRepository
from modules.zones.services import ZoneService

User = get_user_model()

DEPOT = (120.30, 30.30)
RECIPIENT = (120.31, 30.31)


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_cache():
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------


@pytest.fixture()
def merchant():
    return User.objects.create_user(username="merchant", password="testpass123")


@pytest.fixture()
def customer():
    return User.objects.create_user(username="customer", password="testpass123")


@pytest.fixture()
def merchant_id(merchant):
    return str(merchant.pk)


@pytest.fixture()
def customer_id(customer):
    return str(customer.pk)


@pytest.fixture()
def merchant_client(merchant):
    client = APIClient()
    client.force_authenticate(user=merchant)
    return client


@pytest.fixture()
def customer_client(customer):
    client = APIClient()
    client.force_authenticate(user=customer)
    return client


# ---------------------------------------------------------------------------
# Services and domain data
# ---------------------------------------------------------------------------


@pytest.fixture()
def zone_service():
    return ZoneService(repository=ZoneDjangoRepository())


@pytest.fixture()
def order_service():
    return OrderService(
        order_repository=OrderDjangoRepository(),
        zone_repository=ZoneDjangoRepository(),
    )


@pytest.fixture()
def downtown_zone(zone_service, merchant_id):
    """Circle of 5 km around the depot, express rule."""
    return zone_service.create_zone(
        merchant_id,
        ZoneInputDTO(
            name="Downtown",
            rule_id=101,
            shape_type="circle",
            coordinates=[DEPOT],
            radius_meters=5000,
        ),
    )


@pytest.fixture()
def make_order(order_service, merchant_id, customer_id, downtown_zone):
    """Factory creating a pending order inside the downtown zone."""

    def _make(
        recipient=RECIPIENT,
        amount=Decimal("25.00"),
        simulated_fault=None,
    ):
        return order_service.create_order(
            CreateOrderDTO(
                merchant_id=merchant_id,
                user_id=customer_id,
                amount=amount,
                recipient_name="Li Wei",
                recipient_address="12 Lakeside Rd",
                recipient_coordinate=recipient,
                simulated_fault=simulated_fault,
            )
        )

    return _make


@pytest.fixture()
def ship_order(order_service, merchant_id):
    """Ship an order along *route* (default: straight line depot -> recipient)."""

    def _ship(order, route=None, rule_id=101):
        route = route or [DEPOT, (120.305, 30.305), RECIPIENT]
        return order_service.attach_route_and_ship(
            order.id,
            ShipOrderDTO(rule_id=rule_id, route_path=route),
            merchant_id=merchant_id,
        )

    return _ship
