"""Order domain constants.

Defines the delivery status state machine, the anomaly reason tags
persisted by the anomaly sweep, and the simulated faults used for
demo drills.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    SHIPPING = "shipping", "Shipping"
    ARRIVED = "arrived", "Arrived"
    DELIVERED = "delivered", "Delivered"
    CANCELLED = "cancelled", "Cancelled"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.SHIPPING, OrderStatus.CANCELLED},
    OrderStatus.SHIPPING: {OrderStatus.ARRIVED, OrderStatus.CANCELLED},
    OrderStatus.ARRIVED: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

# Counted as "in transit" by the merchant statistics.
IN_TRANSIT_STATES: set[str] = {OrderStatus.SHIPPING, OrderStatus.ARRIVED}


class AnomalyReason(models.TextChoices):
    NONE = "none", "None"
    PENDING_TIMEOUT = "pendingTimeout", "Pending timeout"
    SHIPPING_TIMEOUT = "shippingTimeout", "Shipping timeout"
    POSITION_STALE = "positionStale", "Position stale"
    ROUTE_DEVIATION = "routeDeviation", "Route deviation"


class SimulatedFault(models.TextChoices):
    ROUTE_DEVIATION = "routeDeviation", "Route deviation"
    LONG_TIME_STOPPED = "longTimeStopped", "Long time stopped"
    LONG_TIME_NO_UPDATE = "longTimeNoUpdate", "Long time no update"


SYSTEM_ACTOR = "system"

# Compare-and-swap attempts for transitions whose prior status is not fixed.
CAS_MAX_RETRIES = 3

ANOMALY_CACHE_KEY = "order:anomaly:{order_id}"
FAULT_CACHE_KEY = "order:fault:{order_id}"
