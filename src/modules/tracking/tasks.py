"""Periodic tracking tasks (scheduled by Celery beat)."""

import structlog
from celery import shared_task

from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.tracking.anomaly import AnomalyDetector

logger = structlog.get_logger(__name__)


@shared_task(name="tracking.sweep_anomalies", ignore_result=False)
def sweep_anomalies():
    """Run one anomaly sweep over all eligible orders."""
    report = AnomalyDetector(order_repository=OrderDjangoRepository()).sweep()
    logger.info("sweep_anomalies.executed", flagged=report.flagged_count)
    return report.as_dict()
