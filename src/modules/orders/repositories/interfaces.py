"""Order repository interface.

Extends ``IRepository[Order]`` with the conditional-update primitives
the order lifecycle relies on.  Every mutation is a single predicate-gated
write: a miss returns ``None``/``False`` and is ordinary control flow for
the caller, never an exception.

The Service Layer, the delivery simulator and the anomaly detector depend
exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Persist a new ``pending`` order.

        ``data`` must carry a ``rule_id``; an order without a dispatch rule
        is out of delivery range and is rejected.
        """

    @abstractmethod
    def transition(
        self,
        order_id: UUID | str,
        expected: str,
        new_status: str,
        *,
        changes: Optional[Dict[str, Any]] = None,
        conditions: Optional[Dict[str, Any]] = None,
        actor: str = "system",
        notes: str = "",
    ) -> Optional[Order]:
        """Compare-and-swap the status from *expected* to *new_status*.

        ``changes`` are written together with the status; ``conditions``
        are extra predicates the row must satisfy.  Returns the updated
        order, or ``None`` when no row matched.
        """

    @abstractmethod
    def record_position(
        self,
        order_id: UUID | str,
        position: Sequence[float],
        *,
        require_status: Optional[str] = None,
    ) -> Optional[Order]:
        """Write ``current_position``/``last_update_time``.

        With *require_status* the write only applies while the order is in
        that status.  Returns ``None`` when no row matched.
        """

    @abstractmethod
    def mark_abnormal(
        self,
        order_id: UUID | str,
        reason: str,
        conditions: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Flag a not-yet-abnormal order; ``False`` if it no longer qualifies."""

    @abstractmethod
    def add_history(
        self,
        order_id: UUID | str,
        status: str,
        old_status: Optional[str] = None,
        actor: str = "system",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    # ------------------------------------------------------------------
    # Queries used by the tracking runtime
    # ------------------------------------------------------------------

    @abstractmethod
    def list_by_status(self, status: str) -> List[Order]:
        """All orders currently in *status*."""

    @abstractmethod
    def list_unflagged(
        self,
        status: str,
        *,
        created_before: Optional[datetime] = None,
        updated_before: Optional[datetime] = None,
        with_route_and_position: bool = False,
    ) -> List[Order]:
        """Orders in *status* with ``is_abnormal=False`` matching the bounds."""

    @abstractmethod
    def statistics(self, merchant_id: str) -> Dict[str, Any]:
        """Pending/in-transit/completed counts and total amount."""
