"""Integration tests for the Order API.

Covers:
- Order placement via POST /api/v1/orders/ with delivery-range validation.
- Ship / confirm / cancel transitions and their HTTP error mapping.
- Visibility: only the order's merchant and user can see it.
- Filters, traveled path, anomaly explanation and merchant statistics.
"""

from __future__ import annotations

from decimal import Decimal
from unittest.mock import patch

import pytest
from django.contrib.auth import get_user_model
from django.db import OperationalError
from rest_framework import status
from rest_framework.test import APIClient

from modules.orders import cache as order_cache
from modules.orders.constants import AnomalyReason, OrderStatus
from modules.orders.models import Order

pytestmark = pytest.mark.integration

User = get_user_model()

ORDERS_URL = "/api/v1/orders/"


def _detail_url(order_id) -> str:
    return f"{ORDERS_URL}{order_id}/"


def _action_url(order_id, action: str) -> str:
    return f"{ORDERS_URL}{order_id}/{action}/"


@pytest.fixture()
def stranger_client():
    client = APIClient()
    user = User.objects.create_user(username="stranger", password="testpass123")
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def order_payload(merchant_id):
    return {
        "merchant_id": merchant_id,
        "amount": "42.50",
        "recipient_name": "Zhang Min",
        "recipient_address": "88 West St",
        "recipient_coordinate": [120.31, 30.31],
    }


@pytest.fixture()
def arrived_order(make_order, ship_order, order_service):
    order = ship_order(make_order())
    order_service.record_position(order.id, order.recipient_coordinate)
    assert order_service.try_auto_arrive(order.id)
    return order


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_requires_authentication(self, api_client, order_payload):
        response = api_client.post(ORDERS_URL, order_payload, format="json")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_create_inside_zone(self, customer_client, customer_id, downtown_zone, order_payload):
        response = customer_client.post(ORDERS_URL, order_payload, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        body = response.json()
        assert body["status"] == OrderStatus.PENDING
        assert body["user_id"] == customer_id
        assert body["rule_id"] == 101
        assert body["zone_id"] == str(downtown_zone.id)
        assert body["amount"] == "42.50"
        assert body["recipient_coordinate"] == [120.31, 30.31]
        assert body["current_position"] is None
        assert body["is_abnormal"] is False
        assert body["status_history"][0]["new_status"] == OrderStatus.PENDING

    def test_out_of_range_rejected(self, customer_client, downtown_zone, order_payload):
        payload = {**order_payload, "recipient_coordinate": [121.50, 31.20]}

        response = customer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert Order.objects.count() == 0

    def test_merchant_without_zones_rejects_everything(self, customer_client, order_payload):
        response = customer_client.post(ORDERS_URL, order_payload, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_invalid_coordinate_shape(self, customer_client, downtown_zone, order_payload):
        payload = {**order_payload, "recipient_coordinate": [120.31]}

        response = customer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_negative_amount(self, customer_client, downtown_zone, order_payload):
        payload = {**order_payload, "amount": "-1.00"}

        response = customer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_simulated_fault_kept_in_cache(self, customer_client, downtown_zone, order_payload):
        payload = {**order_payload, "simulated_fault": "longTimeStopped"}

        response = customer_client.post(ORDERS_URL, payload, format="json")

        assert response.status_code == status.HTTP_201_CREATED
        assert order_cache.get_simulated_fault(response.json()["id"]) == "longTimeStopped"


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestShipOrder:
    ROUTE = [[120.30, 30.30], [120.305, 30.305], [120.31, 30.31]]

    def test_merchant_ships_pending_order(self, merchant_client, make_order):
        order = make_order()

        response = merchant_client.post(
            _action_url(order.id, "ship"),
            {"rule_id": 202, "route_path": self.ROUTE},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["status"] == OrderStatus.SHIPPING
        assert body["rule_id"] == 202
        assert body["route_path"] == self.ROUTE
        assert body["traveled_path"] == []

    def test_customer_cannot_ship(self, customer_client, make_order):
        order = make_order()

        response = customer_client.post(
            _action_url(order.id, "ship"),
            {"rule_id": 101, "route_path": self.ROUTE},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        order.refresh_from_db()
        assert order.status == OrderStatus.PENDING

    def test_second_ship_conflicts(self, merchant_client, make_order, ship_order):
        order = ship_order(make_order())

        response = merchant_client.post(
            _action_url(order.id, "ship"),
            {"rule_id": 101, "route_path": self.ROUTE},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_empty_route_rejected(self, merchant_client, make_order):
        order = make_order()

        response = merchant_client.post(
            _action_url(order.id, "ship"), {"rule_id": 101, "route_path": []}, format="json"
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_unknown_order(self, merchant_client):
        response = merchant_client.post(
            _action_url("00000000-0000-0000-0000-000000000000", "ship"),
            {"rule_id": 101, "route_path": self.ROUTE},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestConfirmDelivery:
    def test_customer_confirms_arrived_order(self, customer_client, arrived_order):
        response = customer_client.post(_action_url(arrived_order.id, "confirm"))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == OrderStatus.DELIVERED
        statuses = [h["new_status"] for h in response.json()["status_history"]]
        assert OrderStatus.DELIVERED in statuses

    def test_merchant_cannot_confirm(self, merchant_client, arrived_order):
        response = merchant_client.post(_action_url(arrived_order.id, "confirm"))
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_confirm_while_shipping_conflicts(self, customer_client, make_order, ship_order):
        order = ship_order(make_order())

        response = customer_client.post(_action_url(order.id, "confirm"))

        assert response.status_code == status.HTTP_409_CONFLICT


class TestCancelOrder:
    def test_customer_cancels_pending(self, customer_client, make_order):
        order = make_order()

        response = customer_client.post(
            _action_url(order.id, "cancel"), {"notes": "changed my mind"}, format="json"
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == OrderStatus.CANCELLED
        assert response.json()["status_history"][0]["notes"] == "changed my mind"

    def test_merchant_cancels_shipping(self, merchant_client, make_order, ship_order):
        order = ship_order(make_order())

        response = merchant_client.post(_action_url(order.id, "cancel"))

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["status"] == OrderStatus.CANCELLED

    def test_stranger_cannot_cancel(self, stranger_client, make_order):
        order = make_order()

        response = stranger_client.post(_action_url(order.id, "cancel"))

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_cancel_delivered_conflicts(self, customer_client, customer_id, arrived_order, order_service):
        order_service.confirm_delivery(arrived_order.id, customer_id)

        response = customer_client.post(_action_url(arrived_order.id, "cancel"))

        assert response.status_code == status.HTTP_409_CONFLICT


# ---------------------------------------------------------------------------
# Read
# ---------------------------------------------------------------------------


class TestRetrieveOrder:
    def test_stranger_gets_404(self, stranger_client, make_order):
        order = make_order()

        response = stranger_client.get(_detail_url(order.id))

        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_storage_outage_is_503(self, customer_client, make_order):
        order = make_order()

        with patch.object(
            Order.objects, "prefetch_related", side_effect=OperationalError("db gone")
        ):
            response = customer_client.get(_detail_url(order.id))

        assert response.status_code == status.HTTP_503_SERVICE_UNAVAILABLE

    def test_malformed_id_is_404(self, customer_client):
        response = customer_client.get(_detail_url("not-a-uuid"))
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_traveled_path_follows_position(
        self, customer_client, make_order, ship_order, order_service
    ):
        route = [(120.30, 30.30), (120.302, 30.302), (120.304, 30.304), (120.31, 30.31)]
        order = ship_order(make_order(), route=route)
        order_service.record_position(order.id, (120.3021, 30.3021))

        body = customer_client.get(_detail_url(order.id)).json()

        assert body["traveled_path"] == [[120.30, 30.30], [120.302, 30.302]]
        assert body["current_position"] == [120.3021, 30.3021]

    def test_abnormal_explanation_from_cache(self, customer_client, make_order):
        order = make_order()
        Order.objects.filter(id=order.id).update(
            is_abnormal=True, abnormal_reason=AnomalyReason.PENDING_TIMEOUT
        )
        order_cache.store_anomaly_explanation(order.id, "Pending for 130 minutes.")

        body = customer_client.get(_detail_url(order.id)).json()

        assert body["is_abnormal"] is True
        assert body["abnormal_reason"] == AnomalyReason.PENDING_TIMEOUT
        assert body["abnormal_explanation"] == "Pending for 130 minutes."

    def test_explanation_absent_for_healthy_order(self, customer_client, make_order):
        order = make_order()

        body = customer_client.get(_detail_url(order.id)).json()

        assert body["abnormal_explanation"] is None


class TestListOrders:
    def test_visible_to_both_parties_only(
        self, merchant_client, customer_client, stranger_client, make_order
    ):
        make_order()
        make_order()

        assert merchant_client.get(ORDERS_URL).json()["count"] == 2
        assert customer_client.get(ORDERS_URL).json()["count"] == 2
        assert stranger_client.get(ORDERS_URL).json()["count"] == 0

    def test_filter_by_status(self, merchant_client, make_order, ship_order):
        make_order()
        shipped = ship_order(make_order())

        body = merchant_client.get(ORDERS_URL, {"status": "shipping"}).json()

        assert body["count"] == 1
        assert body["results"][0]["id"] == str(shipped.id)

    def test_filter_by_abnormal(self, merchant_client, make_order):
        flagged = make_order()
        make_order()
        Order.objects.filter(id=flagged.id).update(
            is_abnormal=True, abnormal_reason=AnomalyReason.PENDING_TIMEOUT
        )

        body = merchant_client.get(ORDERS_URL, {"abnormal": "true"}).json()

        assert [row["id"] for row in body["results"]] == [str(flagged.id)]

    def test_list_omits_route(self, merchant_client, make_order, ship_order):
        ship_order(make_order())

        row = merchant_client.get(ORDERS_URL).json()["results"][0]

        assert "route_path" not in row
        assert "status_history" not in row

    def test_ordering_by_amount(self, merchant_client, make_order):
        make_order(amount=Decimal("80.00"))
        make_order(amount=Decimal("10.00"))

        body = merchant_client.get(ORDERS_URL, {"ordering": "amount"}).json()

        assert [row["amount"] for row in body["results"]] == ["10.00", "80.00"]


class TestStatistics:
    STATS_URL = f"{ORDERS_URL}statistics/"

    def test_empty_merchant(self, merchant_client):
        response = merchant_client.get(self.STATS_URL)

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {
            "pending_count": 0,
            "shipping_count": 0,
            "completed_count": 0,
            "total_amount": "0.00",
        }

    def test_counts_by_status(
        self, merchant_client, customer_id, make_order, ship_order, order_service
    ):
        make_order(amount=Decimal("10.00"))
        ship_order(make_order(amount=Decimal("20.00")))
        arrived = ship_order(make_order(amount=Decimal("30.00")))
        order_service.record_position(arrived.id, arrived.recipient_coordinate)
        order_service.try_auto_arrive(arrived.id)
        delivered = ship_order(make_order(amount=Decimal("40.00")))
        order_service.record_position(delivered.id, delivered.recipient_coordinate)
        order_service.try_auto_arrive(delivered.id)
        order_service.confirm_delivery(delivered.id, customer_id)

        body = merchant_client.get(self.STATS_URL).json()

        assert body == {
            "pending_count": 1,
            "shipping_count": 2,
            "completed_count": 1,
            "total_amount": "100.00",
        }
