"""Order repository interface.

Extends ``IRepository[Order]`` with what the lifecycle needs: atomic
creation with the item snapshot, day-scoped token look-ups, a
compare-and-swap status update, and the audit trail.

The Service Layer depends exclusively on this contract (DIP), so tests can
run the guard against an in-memory fake.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order, its items and its creation history atomically.

        ``data`` must include ``token``, ``token_is_sequential``,
        ``civil_date``, ``created_at``, ``customer_name``, ``customer_email``,
        ``customer_phone``, ``total_amount``, ``payment_id``,
        ``payment_signature``, ``gateway_order_id`` and ``items`` (list of
        dicts with ``name``, ``unit_price``, ``quantity``).
        """

    @abstractmethod
    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve an order with prefetched items."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[Order]:
        """List orders with optional filters."""

    @abstractmethod
    def get_by_token(self, token: str, day: date) -> Optional[Order]:
        """Retrieve the order holding *token* on civil date *day*."""

    @abstractmethod
    def get_latest_by_token(self, token: str, before: date) -> Optional[Order]:
        """Most recent order that held *token* on a civil date before *before*."""

    @abstractmethod
    def token_exists(self, token: str, day: date) -> bool:
        """Whether *token* is already taken on civil date *day*."""

    @abstractmethod
    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        """Retrieve an order by its gateway payment id (idempotency key)."""

    @abstractmethod
    def update_status_if(
        self, id: Any, expected: str, new_status: str, at: datetime
    ) -> bool:
        """Set ``status = new_status`` only while it still equals *expected*.

        Returns ``True`` when this call won the row, ``False`` when another
        writer changed the status first (or the order vanished).
        """

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        old_status: Optional[str],
        new_status: str,
        actor: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def count_queued_before(self, day: date, created_at: datetime) -> int:
        """Same-day orders still queued (pending/preparing) created before *created_at*."""

    @abstractmethod
    def latest_active_for_contact(
        self, email: Optional[str] = None, phone: Optional[str] = None
    ) -> Optional[Order]:
        """Most recent non-completed order for an e-mail or phone number."""
