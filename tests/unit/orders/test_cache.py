"""Unit tests for the cache-backed order side data."""

from __future__ import annotations

from unittest.mock import patch
from uuid import uuid4

import pytest

from modules.orders import cache as order_cache

pytestmark = pytest.mark.unit


def test_explanation_round_trip():
    order_id = uuid4()

    assert order_cache.store_anomaly_explanation(order_id, "late") is True
    assert order_cache.get_anomaly_explanation(order_id) == "late"
    assert order_cache.get_anomaly_explanation(str(order_id)) == "late"


def test_missing_values_are_none():
    assert order_cache.get_anomaly_explanation(uuid4()) is None
    assert order_cache.get_simulated_fault(uuid4()) is None


def test_entries_use_configured_ttl(settings):
    settings.TRACKING = {**settings.TRACKING, "ANOMALY_REASON_TTL_SECONDS": 42}

    with patch.object(order_cache, "cache") as cache:
        order_cache.store_simulated_fault("abc", "routeDeviation")

    cache.set.assert_called_once_with("order:fault:abc", "routeDeviation", 42)


def test_cache_outage_degrades():
    with patch.object(order_cache, "cache") as cache:
        cache.set.side_effect = ConnectionError("redis down")
        cache.get.side_effect = ConnectionError("redis down")

        assert order_cache.store_anomaly_explanation("abc", "late") is False
        assert order_cache.get_anomaly_explanation("abc") is None
        assert order_cache.store_simulated_fault("abc", "x") is False
        assert order_cache.get_simulated_fault("abc") is None
