"""Unit tests for DeliverySimulator ticks against the real ledger.

Ticks are driven synchronously through ``tick()`` so every step runs in
the test's database transaction.
"""

from __future__ import annotations

import random

import pytest

from modules.orders.constants import OrderStatus, SimulatedFault
from modules.orders.models import Order
from modules.tracking.broadcaster import PositionBroadcaster
from modules.tracking.events import POSITION_UPDATE, STATUS_UPDATE
from modules.tracking.simulator import (
    ARRIVED_MESSAGE,
    STOPPED_REPEATS,
    DeliverySimulator,
    TickOutcome,
)
from modules.tracking.subscribers import QueueSubscriber
from shared.domain.geo import distance_meters

pytestmark = pytest.mark.unit

# Six points about 290 m apart ending on the recipient (120.31, 30.31).
ROUTE = [
    (120.300, 30.300),
    (120.302, 30.302),
    (120.304, 30.304),
    (120.306, 30.306),
    (120.308, 30.308),
    (120.310, 30.310),
]
SHORT_ROUTE = [(120.300, 30.300), (120.302, 30.302), (120.304, 30.304)]


@pytest.fixture()
def broadcaster():
    with PositionBroadcaster() as instance:
        yield instance


@pytest.fixture()
def simulator(order_service, broadcaster):
    return DeliverySimulator(
        order_service,
        broadcaster,
        arrival_threshold_meters=100,
        default_cadence_ms=1000,
        reload_interval_ms=30000,
        rng=random.Random(7),
    )


@pytest.fixture()
def viewer(broadcaster):
    def _watch(order):
        sub = QueueSubscriber()
        broadcaster.subscribe(str(order.id), sub)
        return sub

    return _watch


class TestAdvancement:
    def test_walks_route_until_arrival(self, simulator, make_order, ship_order, viewer):
        order = ship_order(make_order(), route=ROUTE)
        sub = viewer(order)
        simulator.track(order)

        outcomes = [simulator.tick(order.id) for _ in range(len(ROUTE) - 1)]

        assert outcomes == [TickOutcome.ADVANCED] * 4 + [TickOutcome.ARRIVED]
        order.refresh_from_db()
        assert order.current_position == ROUTE[-1]
        assert order.status == OrderStatus.ARRIVED
        assert not simulator.is_tracking(order.id)

        events = sub.drain()
        positions = [e for e in events if e.type == POSITION_UPDATE]
        assert [tuple(e.coordinates) for e in positions] == ROUTE[1:]
        assert [e.sequence for e in positions] == [1, 2, 3, 4, 5]
        assert events[-1].type == STATUS_UPDATE
        assert events[-1].status == OrderStatus.ARRIVED
        assert events[-1].message == ARRIVED_MESSAGE

    def test_each_tick_moves_one_vertex(self, simulator, make_order, ship_order):
        order = ship_order(make_order(), route=ROUTE)
        simulator.track(order)

        for index in range(1, 4):
            simulator.tick(order.id)
            order.refresh_from_db()
            assert order.current_position == ROUTE[index]
            assert order.status == OrderStatus.SHIPPING

    def test_route_end_outside_threshold_idles(self, simulator, make_order, ship_order):
        order = ship_order(make_order(), route=SHORT_ROUTE)
        simulator.track(order)
        simulator.tick(order.id)
        simulator.tick(order.id)
        order.refresh_from_db()
        last_update = order.last_update_time

        assert simulator.tick(order.id) == TickOutcome.IDLE

        order.refresh_from_db()
        assert order.current_position == SHORT_ROUTE[-1]
        assert order.last_update_time == last_update
        assert simulator.is_tracking(order.id)

    def test_idle_order_cancelled_at_route_end_stops_tracking(
        self, simulator, order_service, make_order, ship_order, viewer
    ):
        order = ship_order(make_order(), route=SHORT_ROUTE)
        sub = viewer(order)
        simulator.track(order)
        simulator.tick(order.id)
        simulator.tick(order.id)
        assert simulator.tick(order.id) == TickOutcome.IDLE

        order_service.cancel_order(order.id)

        assert simulator.tick(order.id) == TickOutcome.LEFT_SHIPPING
        assert not simulator.is_tracking(order.id)
        last = sub.drain()[-1]
        assert (last.type, last.status) == (STATUS_UPDATE, OrderStatus.CANCELLED)

    def test_stops_at_route_end_within_threshold(
        self, simulator, order_service, make_order, ship_order
    ):
        order = ship_order(make_order(), route=ROUTE)
        order_service.record_position(order.id, ROUTE[-1])
        # Already on the final vertex but still shipping.
        simulator.track(Order.objects.get(id=order.id))

        assert simulator.tick(order.id) == TickOutcome.FINISHED
        assert not simulator.is_tracking(order.id)

    def test_cancelled_order_stops_tracking(
        self, simulator, order_service, make_order, ship_order, viewer
    ):
        order = ship_order(make_order(), route=ROUTE)
        sub = viewer(order)
        simulator.track(order)
        simulator.tick(order.id)

        order_service.cancel_order(order.id)

        assert simulator.tick(order.id) == TickOutcome.LEFT_SHIPPING
        assert not simulator.is_tracking(order.id)
        order.refresh_from_db()
        assert order.current_position == ROUTE[1]
        last = sub.drain()[-1]
        assert (last.type, last.status) == (STATUS_UPDATE, OrderStatus.CANCELLED)

    def test_deleted_order_stops_tracking(self, simulator, make_order, ship_order):
        order = ship_order(make_order(), route=ROUTE)
        simulator.track(order)
        Order.objects.filter(id=order.id).delete()

        assert simulator.tick(order.id) == TickOutcome.LEFT_SHIPPING
        assert not simulator.is_tracking(order.id)

    def test_tick_of_untracked_order(self, simulator):
        assert simulator.tick("0190b8c4-0000-7000-8000-000000000000") == (
            TickOutcome.LEFT_SHIPPING
        )


class TestTrackingMembership:
    def test_reconcile_picks_up_shipping_orders_once(
        self, simulator, make_order, ship_order
    ):
        shipped = ship_order(make_order(), route=ROUTE)
        make_order()

        assert simulator.reconcile() == [str(shipped.id)]
        assert simulator.reconcile() == []
        assert simulator.tracked_ids == [str(shipped.id)]

    def test_track_twice_is_rejected(self, simulator, make_order, ship_order):
        order = ship_order(make_order(), route=ROUTE)

        assert simulator.track(order) is True
        assert simulator.track(order) is False

    def test_cursor_resumes_from_last_position(
        self, simulator, order_service, make_order, ship_order
    ):
        order = ship_order(make_order(), route=ROUTE)
        order_service.record_position(order.id, (120.3061, 30.3059))

        simulator.reconcile()
        simulator.tick(order.id)

        order.refresh_from_db()
        assert order.current_position == ROUTE[4]

    def test_order_without_route_not_tracked(self, simulator, make_order, ship_order):
        order = ship_order(make_order(), route=ROUTE)
        Order.objects.filter(id=order.id).update(route_path=None)

        assert simulator.reconcile() == []

    @pytest.mark.parametrize("rule_id, cadence", [(101, 500), (103, 2000), (999, 1000)])
    def test_cadence_follows_rule(self, simulator, make_order, ship_order, rule_id, cadence):
        order = ship_order(make_order(), route=ROUTE, rule_id=rule_id)
        simulator.track(order)

        assert simulator._tracked[str(order.id)].cadence_ms == cadence

    def test_untrack_releases_broadcast_sequence(
        self, simulator, broadcaster, make_order, ship_order
    ):
        order = ship_order(make_order(), route=ROUTE)
        simulator.track(order)
        simulator.tick(order.id)

        simulator.untrack(order.id)

        assert broadcaster.publish_position(order.id, (0, 0)).sequence == 1


class TestSimulatedFaults:
    def test_long_time_stopped_holds_each_vertex(self, simulator, make_order, ship_order):
        order = ship_order(
            make_order(simulated_fault=SimulatedFault.LONG_TIME_STOPPED), route=ROUTE
        )
        simulator.track(order)

        held = [simulator.tick(order.id) for _ in range(STOPPED_REPEATS)]
        order.refresh_from_db()
        assert held == [TickOutcome.HELD] * STOPPED_REPEATS
        assert order.current_position == ROUTE[0]

        assert simulator.tick(order.id) == TickOutcome.ADVANCED
        order.refresh_from_db()
        assert order.current_position == ROUTE[1]

        assert simulator.tick(order.id) == TickOutcome.HELD
        order.refresh_from_db()
        assert order.current_position == ROUTE[1]

    def test_route_deviation_offsets_position(self, simulator, make_order, ship_order):
        order = ship_order(
            make_order(simulated_fault=SimulatedFault.ROUTE_DEVIATION), route=ROUTE
        )
        simulator.track(order)

        simulator.tick(order.id)

        order.refresh_from_db()
        offset = distance_meters(order.current_position, ROUTE[1])
        assert 6000 <= offset <= 8000 + 1
        assert order.status == OrderStatus.SHIPPING

    def test_long_time_no_update_never_moves(self, simulator, make_order, ship_order):
        order = ship_order(
            make_order(simulated_fault=SimulatedFault.LONG_TIME_NO_UPDATE), route=ROUTE
        )
        simulator.track(order)

        outcomes = {simulator.tick(order.id) for _ in range(3)}

        assert outcomes == {TickOutcome.IDLE}
        order.refresh_from_db()
        assert order.current_position is None
        assert simulator.is_tracking(order.id)

    def test_long_time_no_update_order_cancelled_stops_tracking(
        self, simulator, order_service, make_order, ship_order
    ):
        order = ship_order(
            make_order(simulated_fault=SimulatedFault.LONG_TIME_NO_UPDATE), route=ROUTE
        )
        simulator.track(order)
        assert simulator.tick(order.id) == TickOutcome.IDLE

        order_service.cancel_order(order.id)

        assert simulator.tick(order.id) == TickOutcome.LEFT_SHIPPING
        assert not simulator.is_tracking(order.id)

    def test_long_time_no_update_order_deleted_stops_tracking(
        self, simulator, make_order, ship_order
    ):
        order = ship_order(
            make_order(simulated_fault=SimulatedFault.LONG_TIME_NO_UPDATE), route=ROUTE
        )
        simulator.track(order)
        Order.objects.filter(id=order.id).delete()

        assert simulator.tick(order.id) == TickOutcome.LEFT_SHIPPING
        assert not simulator.is_tracking(order.id)
