import time
from typing import Any, Dict

import structlog
from django.core.cache import cache
from django.db import connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

logger = structlog.get_logger(__name__)


def _timed(start: float) -> float:
    return round((time.monotonic() - start) * 1000, 2)


def _check_database() -> Dict[str, Any]:
    start = time.monotonic()
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {"status": "up", "response_time_ms": _timed(start)}


def _check_cache() -> Dict[str, Any]:
    """Anomaly explanations and simulated faults live in this cache."""
    start = time.monotonic()
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")
    return {"status": "up", "response_time_ms": _timed(start)}


def _tracking_summary() -> Dict[str, Any]:
    from modules.orders.constants import OrderStatus
    from modules.orders.models import Order

    return {
        "shipping_orders": Order.objects.filter(status=OrderStatus.SHIPPING).count(),
        "abnormal_orders": Order.objects.filter(is_abnormal=True).count(),
    }


def health_check(request: HttpRequest) -> JsonResponse:
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True
    degraded = False

    try:
        services["database"] = _check_database()
    except Exception:
        services["database"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check.database_down")

    try:
        services["cache"] = _check_cache()
    except Exception:
        services["cache"] = {"status": "down"}
        degraded = True
        logger.warning("health_check.cache_down")

    payload: Dict[str, Any] = {
        "status": _overall_status(overall_healthy, degraded),
        "timestamp": timezone.now().isoformat(),
        "services": services,
    }
    if overall_healthy:
        payload["tracking"] = _tracking_summary()

    logger.info("health_check.completed", status=payload["status"])
    return JsonResponse(payload, status=200 if overall_healthy else 503)


def _overall_status(healthy: bool, degraded: bool) -> str:
    if not healthy:
        return "unhealthy"
    return "degraded" if degraded else "healthy"
