"""Charge intent model.

A ``ChargeIntent`` is written when the customer starts checkout: the
server prices the cart, opens an order at the gateway for that amount and
keeps the cart snapshot here.  Payment completion builds the canteen order
from this record, never from what the client sends back.
"""

from __future__ import annotations

from decimal import Decimal

from django.db import models

from modules.core.models import BaseModel
from modules.payments.constants import ChargeIntentStatus


class ChargeIntent(BaseModel):
    """Server-side record of a checkout awaiting payment."""

    gateway_order_id: models.CharField = models.CharField(max_length=100, unique=True)
    receipt: models.CharField = models.CharField(max_length=40)
    customer_name: models.CharField = models.CharField(max_length=255)
    customer_email: models.EmailField = models.EmailField()
    customer_phone: models.CharField = models.CharField(
        max_length=20, blank=True, default=""
    )
    amount: models.DecimalField = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    currency: models.CharField = models.CharField(max_length=3, default="INR")
    # [{"name": ..., "unit_price": "40.00", "quantity": 2}, ...]
    items: models.JSONField = models.JSONField(default=list)
    status: models.CharField = models.CharField(
        max_length=10,
        choices=ChargeIntentStatus.choices,
        default=ChargeIntentStatus.OPEN,
    )
    payment_id: models.CharField = models.CharField(
        max_length=255, blank=True, default=""
    )

    class Meta:
        db_table = "charge_intents"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["customer_email"], name="charge_intents_email_idx"),
        ]

    def __str__(self) -> str:
        return f"{self.gateway_order_id} ₹{self.amount} ({self.status})"
