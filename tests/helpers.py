"""Shared test doubles and builders."""

from __future__ import annotations

import hashlib
import hmac
import threading
from datetime import date, datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

from modules.orders.dtos import CreateOrderDTO, OrderItemDTO, PaymentReferenceDTO
from modules.payments.constants import CAPTURED
from modules.payments.exceptions import PaymentGatewayUnavailable
from modules.payments.gateway import GatewayOrder, GatewayPayment, IPaymentGateway
from modules.tokens.exceptions import CounterUnavailable
from modules.tokens.repositories.interfaces import IDailyCounterRepository

IST = ZoneInfo("Asia/Kolkata")
GATEWAY_SECRET = "test-gateway-secret"


class InMemoryDailyCounterRepository(IDailyCounterRepository):
    """Thread-safe stand-in for the store's atomic daily counter."""

    def __init__(self) -> None:
        self._counters: dict[date, int] = {}
        self._lock = threading.Lock()

    def increment(self, date_key: date) -> int:
        with self._lock:
            value = self._counters.get(date_key, 0) + 1
            self._counters[date_key] = value
            return value

    def current(self, date_key: date) -> int:
        return self._counters.get(date_key, 0)


class UnavailableDailyCounterRepository(IDailyCounterRepository):
    def __init__(self) -> None:
        self.calls = 0

    def increment(self, date_key: date) -> int:
        self.calls += 1
        raise CounterUnavailable("connection refused")


class FakePaymentGateway(IPaymentGateway):
    """In-memory gateway: opens orders and records what the customer paid."""

    def __init__(self) -> None:
        self.orders: dict[str, GatewayOrder] = {}
        self.payments: dict[str, GatewayPayment] = {}
        self.notes: dict[str, dict] = {}

    def create_order(self, amount, currency, receipt, notes=None) -> GatewayOrder:
        order = GatewayOrder(
            id=f"order_gw_{len(self.orders) + 1:04d}",
            amount=amount,
            currency=currency,
            receipt=receipt,
        )
        self.orders[order.id] = order
        self.notes[order.id] = dict(notes or {})
        return order

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        try:
            return self.payments[payment_id]
        except KeyError:
            raise PaymentGatewayUnavailable(f"Unknown payment {payment_id}") from None

    def pay(
        self,
        gateway_order_id: str,
        payment_id: str,
        amount: Decimal | None = None,
        status: str = CAPTURED,
    ) -> str:
        """Record a payment against an open order; returns the receipt signature."""
        order = self.orders[gateway_order_id]
        self.payments[payment_id] = GatewayPayment(
            id=payment_id,
            order_id=gateway_order_id,
            amount=order.amount if amount is None else amount,
            currency=order.currency,
            status=status,
        )
        return sign_receipt(gateway_order_id, payment_id)


def ist(*args: int) -> datetime:
    """Aware datetime on the canteen's wall clock."""
    return datetime(*args, tzinfo=IST)


def sign_receipt(gateway_order_id: str, payment_id: str) -> str:
    message = f"{gateway_order_id}|{payment_id}".encode()
    return hmac.new(GATEWAY_SECRET.encode(), message, hashlib.sha256).hexdigest()


def make_order_dto(payment_id: str = "pay_001", **overrides) -> CreateOrderDTO:
    items = overrides.pop(
        "items",
        [
            OrderItemDTO(name="Masala Dosa", unit_price=Decimal("40.00"), quantity=2),
            OrderItemDTO(name="Filter Coffee", unit_price=Decimal("15.00"), quantity=1),
        ],
    )
    total = overrides.pop(
        "total_amount", sum((item.subtotal for item in items), Decimal("0.00"))
    )
    data = {
        "customer_name": "Aarav Sharma",
        "customer_email": "aarav@example.com",
        "customer_phone": "9876543210",
        "items": items,
        "total_amount": total,
        "payment": PaymentReferenceDTO(
            payment_id=payment_id,
            signature=sign_receipt(f"order_{payment_id}", payment_id),
            gateway_order_id=f"order_{payment_id}",
        ),
    }
    data.update(overrides)
    return CreateOrderDTO(**data)
