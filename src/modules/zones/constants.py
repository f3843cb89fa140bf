"""Zone domain constants.

Defines the supported zone shapes and the static dispatch-rule table
that maps a rule id to a simulated movement cadence (a coarse proxy for
the service-speed tier).  The table is read-only at runtime.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.db import models


class ShapeType(models.TextChoices):
    POLYGON = "polygon", "Polygon"
    CIRCLE = "circle", "Circle"


@dataclass(frozen=True)
class DispatchRule:
    id: int
    cadence_ms: int
    label: str


DISPATCH_RULES: dict[int, DispatchRule] = {
    101: DispatchRule(id=101, cadence_ms=500, label="express"),
    102: DispatchRule(id=102, cadence_ms=1000, label="standard"),
    103: DispatchRule(id=103, cadence_ms=2000, label="economy"),
}

MIN_POLYGON_POINTS = 3


def cadence_for_rule(rule_id: int | None, default_ms: int) -> int:
    """Tick interval in milliseconds for *rule_id* (faster rule, shorter tick)."""
    rule = DISPATCH_RULES.get(rule_id) if rule_id is not None else None
    return rule.cadence_ms if rule else default_ms
