"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Creation is wrapped in ``transaction.atomic()`` so the Order aggregate
(Order + OrderItems + creation history) is persisted atomically.

Concurrency control on status updates is a conditional ``UPDATE ... WHERE
status = <expected>``: the database serializes racing writers on the row
and exactly one of them sees ``rowcount == 1``.  No in-process lock is
involved, so it holds across workers and instances.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import QuerySet

from modules.orders.constants import ACTIVE_STATES, QUEUED_STATES
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        order = Order(
            token=data["token"],
            token_is_sequential=data.get("token_is_sequential", True),
            civil_date=data["civil_date"],
            created_at=data["created_at"],
            customer_name=data["customer_name"],
            customer_email=data["customer_email"],
            customer_phone=data.get("customer_phone") or "",
            total_amount=data["total_amount"],
            payment_id=data["payment_id"],
            payment_signature=data["payment_signature"],
            gateway_order_id=data.get("gateway_order_id") or "",
        )
        order.save()

        items = data.get("items", [])
        for position, item_data in enumerate(items):
            OrderItem(
                order=order,
                position=position,
                name=item_data["name"],
                quantity=item_data["quantity"],
                unit_price=item_data["unit_price"],
            ).save()

        OrderStatusHistory.objects.create(
            order=order,
            old_status=None,
            new_status=order.status,
            actor=data.get("actor", "system"),
            notes="Order created",
        )

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            token=order.token,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _queryset(self) -> QuerySet:
        return Order.objects.prefetch_related("items", "status_history")

    def get_by_id(self, id: str) -> Optional[Order]:
        """Returns ``None`` for non-existent or malformed IDs."""
        try:
            return self._queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """List orders with optional filters and eager-loaded relations.

        Supported filter keys are any Django lookups on ``Order`` (e.g.
        ``status``, ``civil_date``, ``token``).
        """
        queryset = self._queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def get_by_token(self, token: str, day: date) -> Optional[Order]:
        return self._queryset().filter(token=token, civil_date=day).first()

    def get_latest_by_token(self, token: str, before: date) -> Optional[Order]:
        return (
            self._queryset()
            .filter(token=token, civil_date__lt=before)
            .order_by("-civil_date")
            .first()
        )

    def token_exists(self, token: str, day: date) -> bool:
        return Order.objects.filter(token=token, civil_date=day).exists()

    def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        return self._queryset().filter(payment_id=payment_id).first()

    def count_queued_before(self, day: date, created_at: datetime) -> int:
        return Order.objects.filter(
            civil_date=day,
            status__in=QUEUED_STATES,
            created_at__lt=created_at,
        ).count()

    def latest_active_for_contact(
        self, email: Optional[str] = None, phone: Optional[str] = None
    ) -> Optional[Order]:
        queryset = self._queryset().filter(status__in=ACTIVE_STATES)
        if email:
            queryset = queryset.filter(customer_email__iexact=email)
        elif phone:
            queryset = queryset.filter(customer_phone=phone)
        else:
            return None
        return queryset.order_by("-created_at").first()

    # ------------------------------------------------------------------
    # Compare-and-swap status update
    # ------------------------------------------------------------------

    def update_status_if(
        self, id: Any, expected: str, new_status: str, at: datetime
    ) -> bool:
        updated = Order.objects.filter(id=id, status=expected).update(
            status=new_status, updated_at=at
        )
        if not updated:
            logger.warning(
                "order.status_cas_lost",
                order_id=str(id),
                expected=expected,
                new_status=new_status,
            )
        return updated == 1

    # ------------------------------------------------------------------
    # Audit trail
    # ------------------------------------------------------------------

    def add_history(
        self,
        order_id: Any,
        old_status: Optional[str],
        new_status: str,
        actor: str = "",
        notes: str = "",
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
        )
        return history
