"""Order service layer (Use Cases).

Orchestrates token allocation, the order lifecycle, pickup redemption and
the customer-facing order queries.

Business rules enforced:
- A paid receipt creates at most one order (``payment_id`` idempotency).
- Every order is persisted with a token allocated for the civil day of its
  ``created_at``; no order exists without a token.
- Status transitions follow the state machine; completion is same-day only.
- A token is redeemed at most once, and only on its own civil day.
- Racing writers are serialized by a conditional update on the previously
  read status; the loser re-reads and fails with a typed error.

The service performs no retries: retry policy belongs to the caller.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction

from modules.core.civil_time import CivilClock, civil_date, get_civil_timezone
from modules.core.exceptions import DomainError
from modules.orders.constants import AMOUNT_TOLERANCE, OrderStatus
from modules.orders.events import OrderPlaced, OrderRedeemed, OrderStatusChanged
from modules.orders.exceptions import (
    AlreadyRedeemed,
    InvalidTransition,
    OrderNotFound,
    PaymentAmountMismatch,
    TokenExpired,
)
from modules.orders.lifecycle import OrderLifecycleGuard
from modules.tokens.exceptions import AllocationFailed

if TYPE_CHECKING:
    from modules.orders.dtos import CreateOrderDTO
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.tokens.allocator import TokenAllocator
    from shared.domain.bus import IEventBus

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class TokenLookup:
    """A same-day order found by token, with its place in the kitchen queue."""

    order: Order
    queue_position: Optional[int]


class OrderService:
    """Application service for Order use-cases.

    Receives its collaborators via constructor injection (DIP): the order
    repository, the token allocator, the lifecycle guard, the event bus and
    a civil clock used when callers do not pass ``now``.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        token_allocator: TokenAllocator,
        guard: Optional[OrderLifecycleGuard] = None,
        event_bus: Optional[IEventBus] = None,
        clock: Optional[CivilClock] = None,
    ) -> None:
        self._order_repo = order_repository
        self._allocator = token_allocator
        self._guard = guard or OrderLifecycleGuard(token_allocator.tz)
        self._event_bus = event_bus
        self._clock = clock or CivilClock(self._guard.tz)

    @property
    def tz(self):
        return self._guard.tz

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(
        self, dto: CreateOrderDTO, now: Optional[datetime] = None
    ) -> tuple[Order, bool]:
        """Persist a paid order with a freshly allocated pickup token.

        Returns ``(order, created)``; ``created`` is ``False`` when the
        payment had already produced an order.

        Raises:
            PaymentAmountMismatch: paid total disagrees with the items.
            AllocationFailed: no token could be allocated (nothing persisted).
        """
        now = now or self._clock.now()
        log = logger.bind(payment_id=dto.payment.payment_id)
        log.info("order.creation_started")

        # 0. Idempotency: a receipt maps to exactly one order
        existing = self._order_repo.get_by_payment_id(dto.payment.payment_id)
        if existing:
            log.info("order.idempotency_hit", order_id=str(existing.id))
            return existing, False

        # 1. Amount check against the frozen snapshot
        if abs(dto.items_total - dto.total_amount) > Decimal(AMOUNT_TOLERANCE):
            log.warning(
                "order.amount_mismatch",
                items_total=str(dto.items_total),
                paid=str(dto.total_amount),
            )
            raise PaymentAmountMismatch(
                f"Paid {dto.total_amount} but items total {dto.items_total}."
            )

        # 2. Allocate outside the order transaction; an aborted insert only
        #    leaves a gap in the day's sequence.
        try:
            token = self._allocator.allocate(now)
        except DatabaseError as exc:
            raise AllocationFailed(f"Token allocation failed: {exc}") from exc

        # 3. Persist order + items + creation history atomically
        data: Dict[str, Any] = {
            "token": token.value,
            "token_is_sequential": token.is_sequential,
            "civil_date": civil_date(now, self.tz),
            "created_at": now,
            "customer_name": dto.customer_name,
            "customer_email": dto.customer_email,
            "customer_phone": dto.customer_phone or "",
            "total_amount": dto.total_amount,
            "payment_id": dto.payment.payment_id,
            "payment_signature": dto.payment.signature,
            "gateway_order_id": dto.payment.gateway_order_id,
            "items": [
                {
                    "name": item.name,
                    "unit_price": item.unit_price,
                    "quantity": item.quantity,
                }
                for item in dto.items
            ],
        }
        try:
            with transaction.atomic():
                order = self._order_repo.create(data)
        except IntegrityError as exc:
            winner = self._order_repo.get_by_payment_id(dto.payment.payment_id)
            if winner:
                log.info("order.idempotency_race", order_id=str(winner.id))
                return winner, False
            log.error("order.token_collision", token=token.value, error=str(exc))
            raise AllocationFailed(
                f"Token {token.value} collided with an existing order."
            ) from exc

        log.info(
            "order.created",
            order_id=str(order.id),
            token=order.token,
            sequential=token.is_sequential,
        )
        self._publish(OrderPlaced(aggregate_id=order.id, token=order.token))
        return self._order_repo.get_by_id(str(order.id)) or order, True

    def transition(
        self,
        order_id: UUID | str,
        target: str,
        now: Optional[datetime] = None,
        actor: str = "",
        notes: str = "",
    ) -> Order:
        """Move an order to *target* after validating the edge and the day rule.

        Raises:
            OrderNotFound: order does not exist.
            InvalidTransition: edge not in the state machine, or lost a race.
            StaleOrder: completion of an order from an earlier civil day.
        """
        now = now or self._clock.now()
        order = self._order_repo.get_by_id(str(order_id))
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=str(order.id),
            token=order.token,
            current_status=order.status,
            new_status=target,
        )
        try:
            self._guard.check_transition(order, target, now)
        except DomainError as exc:
            log.warning("order.transition_rejected", reason=type(exc).__name__)
            raise

        old_status = order.status
        with transaction.atomic():
            if not self._order_repo.update_status_if(order.id, old_status, target, now):
                current = self._order_repo.get_by_id(str(order.id))
                if current is None:
                    raise OrderNotFound(f"Order {order_id} not found.")
                log.warning("order.transition_conflict", observed=current.status)
                # Re-validate against what the winner left behind
                self._guard.check_transition(current, target, now)
                raise InvalidTransition(
                    f"Order {current.token} changed concurrently to {current.status}."
                )
            self._order_repo.add_history(
                order.id, old_status, target, actor=actor, notes=notes
            )

        log.info("order.transitioned")
        self._publish(
            OrderStatusChanged(
                aggregate_id=order.id, old_status=old_status, new_status=target
            )
        )
        return self._order_repo.get_by_id(str(order.id))

    def redeem_by_token(
        self, token: str, now: Optional[datetime] = None, actor: str = "scan"
    ) -> Order:
        """Close out today's order holding *token* (pickup scan / manual entry).

        Raises:
            OrderNotFound: no order holds the token, today or earlier.
            TokenExpired: the token belongs to an earlier civil day.
            AlreadyRedeemed: the order is already completed.
            NotReady: the order is still pending or preparing.
        """
        now = now or self._clock.now()
        order = self._resolve_token(token, now)
        log = logger.bind(order_id=str(order.id), token=token, status=order.status)

        try:
            self._guard.check_redeemable(order, now)
        except DomainError as exc:
            log.warning("order.redeem_rejected", reason=type(exc).__name__)
            raise

        with transaction.atomic():
            if not self._order_repo.update_status_if(
                order.id, OrderStatus.READY, OrderStatus.COMPLETED, now
            ):
                current = self._order_repo.get_by_id(str(order.id))
                if current is None:
                    raise OrderNotFound(f"Order with token {token} not found.")
                log.warning("order.redeem_conflict", observed=current.status)
                self._guard.check_redeemable(current, now)
                raise AlreadyRedeemed()
            self._order_repo.add_history(
                order.id,
                OrderStatus.READY,
                OrderStatus.COMPLETED,
                actor=actor,
                notes="Token redeemed at pickup",
            )

        log.info("order.redeemed")
        self._publish(OrderRedeemed(aggregate_id=order.id, token=token))
        return self._order_repo.get_by_id(str(order.id))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str) -> Order:
        """Retrieve a single order by ID.

        Raises:
            OrderNotFound: if the order does not exist.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(self, filters: Optional[Dict[str, Any]] = None):
        """Return orders, optionally filtered."""
        return self._order_repo.list(filters)

    def lookup_token(self, token: str, now: Optional[datetime] = None) -> TokenLookup:
        """Today's order for *token* and its position in the kitchen queue.

        Raises:
            OrderNotFound: unknown token.
            TokenExpired: the token belongs to an earlier civil day.
        """
        now = now or self._clock.now()
        order = self._resolve_token(token, now)
        if not self._guard.is_from_today(order, now):
            raise TokenExpired()

        position = None
        if order.status in (OrderStatus.PENDING, OrderStatus.PREPARING):
            ahead = self._order_repo.count_queued_before(order.civil_date, order.created_at)
            position = ahead + 1
        return TokenLookup(order=order, queue_position=position)

    def check_token(self, token: str, now: Optional[datetime] = None) -> Order:
        """Today's order for *token*, if a pickup scan would succeed now.

        Runs the same resolution and checks as ``redeem_by_token`` and
        writes nothing.

        Raises:
            OrderNotFound: no order holds the token, today or earlier.
            TokenExpired: the token belongs to an earlier civil day.
            AlreadyRedeemed: the order is already completed.
            NotReady: the order is still pending or preparing.
        """
        now = now or self._clock.now()
        order = self._resolve_token(token, now)
        self._guard.check_redeemable(order, now)
        return order

    def list_customer_orders(self, email: str, status: Optional[str] = None):
        """Every order placed with *email*, any day, any status."""
        filters: Dict[str, Any] = {"customer_email__iexact": email}
        if status:
            filters["status"] = status
        return self._order_repo.list(filters)

    def get_customer_order(self, order_id: str, email: str) -> Order:
        """One of the customer's own orders.

        Raises:
            OrderNotFound: unknown id, or the order belongs to someone else.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order or order.customer_email.lower() != email.lower():
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def find_active_order(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Order:
        """Latest open order for a customer contact ("find my token").

        Raises:
            OrderNotFound: no open order for that e-mail / phone.
            TokenExpired: the latest open order is from an earlier civil day.
        """
        now = now or self._clock.now()
        order = self._order_repo.latest_active_for_contact(email=email, phone=phone)
        if not order:
            raise OrderNotFound(
                "No active order found for the provided email or phone number."
            )
        if not self._guard.is_from_today(order, now):
            raise TokenExpired()
        return order

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _resolve_token(self, token: str, now: datetime) -> Order:
        today = civil_date(now, self.tz)
        order = self._order_repo.get_by_token(token, today)
        if order:
            return order
        # The literal may belong to an earlier day's order; that one is
        # expired, never confused with a future holder of the same token.
        if self._order_repo.get_latest_by_token(token, before=today):
            raise TokenExpired()
        raise OrderNotFound(f"Order with token {token} not found.")

    def _publish(self, event) -> None:
        if self._event_bus is not None:
            self._event_bus.publish(event)


def build_order_service(event_bus: Optional[IEventBus] = None) -> OrderService:
    """Wire the production collaborators from Django settings."""
    from modules.orders.repositories.django_repository import OrderDjangoRepository
    from modules.tokens.allocator import SyntheticStrategy, TokenAllocator
    from modules.tokens.repositories.django_repository import (
        DailyCounterDjangoRepository,
    )
    from shared.infrastructure.bus import event_bus as default_bus

    tz = get_civil_timezone()
    order_repository = OrderDjangoRepository()
    fallback = None
    if settings.TOKEN_FALLBACK_ENABLED:
        fallback = SyntheticStrategy(
            prefix=settings.TOKEN_PREFIX,
            tz=tz,
            token_in_use=order_repository.token_exists,
        )
    allocator = TokenAllocator(
        counter_repository=DailyCounterDjangoRepository(),
        prefix=settings.TOKEN_PREFIX,
        tz=tz,
        fallback=fallback,
    )
    return OrderService(
        order_repository=order_repository,
        token_allocator=allocator,
        guard=OrderLifecycleGuard(tz),
        event_bus=event_bus or default_bus,
        clock=CivilClock(tz),
    )
