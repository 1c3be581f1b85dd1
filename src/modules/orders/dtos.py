"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``OrderItemDTO``: one line of the paid snapshot.
- ``PaymentReferenceDTO``: verified gateway receipt identifiers.
- ``CreateOrderDTO``: input for order creation.
- ``OrderOutputDTO``: output with items and history.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, field_validator

if TYPE_CHECKING:
    from modules.orders.models import Order

# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class OrderItemDTO(BaseModel):
    """Immutable snapshot of a menu line at payment time."""

    model_config = ConfigDict(frozen=True)

    name: str
    unit_price: Decimal
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v

    @field_validator("unit_price")
    @classmethod
    def unit_price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Unit price cannot be negative.")
        return v

    @property
    def subtotal(self) -> Decimal:
        return self.unit_price * self.quantity


class PaymentReferenceDTO(BaseModel):
    """Gateway identifiers of a receipt whose signature was already verified."""

    model_config = ConfigDict(frozen=True)

    payment_id: str
    signature: str
    gateway_order_id: str = ""


class CreateOrderDTO(BaseModel):
    """Immutable DTO for order creation.

    ``total_amount`` is the validated payment amount; the service rejects it
    when it disagrees with the item snapshot.
    """

    model_config = ConfigDict(frozen=True)

    customer_name: str
    customer_email: EmailStr
    customer_phone: Optional[str] = ""
    items: List[OrderItemDTO]
    total_amount: Decimal
    payment: PaymentReferenceDTO

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[OrderItemDTO]) -> List[OrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("total_amount")
    @classmethod
    def total_must_be_positive(cls, v: Decimal) -> Decimal:
        if v <= 0:
            raise ValueError("Order total must be positive.")
        return v

    @property
    def items_total(self) -> Decimal:
        return sum((item.subtotal for item in self.items), Decimal("0.00"))


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class OrderOutputDTO(BaseModel):
    """Immutable DTO for pickup receipts and notifications."""

    model_config = ConfigDict(frozen=True)

    id: UUID
    token: str
    civil_date: date
    status: str
    total_amount: Decimal
    customer_name: str
    customer_email: str
    created_at: datetime
    updated_at: datetime
    items: List[OrderItemDTO]

    @classmethod
    def from_entity(cls, order: Order) -> OrderOutputDTO:
        """Build an output DTO from an Order model instance."""
        items = [
            OrderItemDTO(
                name=item.name,
                unit_price=item.unit_price,
                quantity=item.quantity,
            )
            for item in order.items.all()
        ]
        return cls(
            id=order.id,
            token=order.token,
            civil_date=order.civil_date,
            status=order.status,
            total_amount=order.total_amount,
            customer_name=order.customer_name,
            customer_email=order.customer_email,
            created_at=order.created_at,
            updated_at=order.updated_at,
            items=items,
        )
