"""Ephemeral order side-data kept in the Django cache (Redis in production).

- anomaly explanations written by the anomaly sweep (``order:anomaly:<id>``)
- simulated faults attached to demo orders (``order:fault:<id>``)

The cache is auxiliary: every helper degrades to a logged warning and a
neutral return value when the backend is unavailable.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.core.cache import cache

from modules.orders.constants import ANOMALY_CACHE_KEY, FAULT_CACHE_KEY

logger = structlog.get_logger(__name__)


def _ttl() -> int:
    return settings.TRACKING["ANOMALY_REASON_TTL_SECONDS"]


def store_anomaly_explanation(order_id: UUID | str, explanation: str) -> bool:
    key = ANOMALY_CACHE_KEY.format(order_id=order_id)
    try:
        cache.set(key, explanation, _ttl())
    except Exception:
        logger.warning("order.cache_write_failed", key=key, exc_info=True)
        return False
    return True


def get_anomaly_explanation(order_id: UUID | str) -> Optional[str]:
    key = ANOMALY_CACHE_KEY.format(order_id=order_id)
    try:
        return cache.get(key)
    except Exception:
        logger.warning("order.cache_read_failed", key=key, exc_info=True)
        return None


def store_simulated_fault(order_id: UUID | str, fault: str) -> bool:
    key = FAULT_CACHE_KEY.format(order_id=order_id)
    try:
        cache.set(key, fault, _ttl())
    except Exception:
        logger.warning("order.cache_write_failed", key=key, exc_info=True)
        return False
    return True


def get_simulated_fault(order_id: UUID | str) -> Optional[str]:
    key = FAULT_CACHE_KEY.format(order_id=order_id)
    try:
        return cache.get(key)
    except Exception:
        logger.warning("order.cache_read_failed", key=key, exc_info=True)
        return None
