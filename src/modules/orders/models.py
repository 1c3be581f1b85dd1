"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- ``token`` is unique per civil day: ``UNIQUE(civil_date, token)``.  The same
  literal (``T-001``) recurs every day on a different order.
- ``civil_date`` is the canteen-local date of ``created_at``, written once at
  creation and never recomputed.
- Status transitions are validated by ``OrderLifecycleGuard`` alone.
- ``payment_id`` is unique: a gateway receipt creates at most one order.
- OrderItem is a frozen snapshot (name, unit price, quantity) independent
  of any live menu.
- Every status change is recorded in OrderStatusHistory.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import OrderStatus
from modules.tokens.constants import TOKEN_MAX_LENGTH


class Order(BaseModel):
    """Order aggregate root.

    ``token`` is the human-facing pickup code; the UUIDv7 ``id`` is used for
    all internal references and staff API lookups.
    """

    token: models.CharField = models.CharField(
        max_length=TOKEN_MAX_LENGTH, editable=False
    )
    civil_date: models.DateField = models.DateField(editable=False)
    token_is_sequential: models.BooleanField = models.BooleanField(default=True)
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    total_amount: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    customer_name: models.CharField = models.CharField(max_length=255)
    customer_email: models.EmailField = models.EmailField()
    customer_phone: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    payment_id: models.CharField = models.CharField(max_length=255, unique=True)
    payment_signature: models.CharField = models.CharField(max_length=255)
    gateway_order_id: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "orders"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["civil_date", "token"],
                name="orders_token_unique_per_day",
            ),
        ]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["civil_date", "status"], name="orders_day_status_idx"),
            models.Index(fields=["customer_email"], name="orders_email_idx"),
        ]

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.token} {self.civil_date:%Y-%m-%d} ({self.status})"


class OrderItem(BaseModel):
    """Line item snapshot captured when the order was paid.

    ``subtotal`` is always ``quantity * unit_price``, recalculated on every save.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    position: models.PositiveSmallIntegerField = models.PositiveSmallIntegerField(
        default=0
    )
    name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    unit_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["position"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        self.subtotal = self.quantity * self.unit_price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} (₹{self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``old_status`` is ``None`` for the creation record.  ``actor`` is a free
    text label (staff username, "scan", "system") since customers are
    not local users.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    actor: models.CharField = models.CharField(max_length=150, blank=True, default="")
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at"]
        indexes = [
            models.Index(
                fields=["order", "created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
