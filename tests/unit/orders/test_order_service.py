"""Unit tests for ``OrderService``.

Runs on the real ORM repository with an in-memory token counter and a
pinned "now" for every call.

Covers:
- Creation: token allocation, idempotency by payment, amount check,
  allocation failure leaves nothing behind.
- Transitions along the state machine, with history.
- Pickup redemption: happy path, stale pickup, double redemption.
- Lost races on the conditional status update.
- Token lookup with queue position and "find my token".
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from django.db import OperationalError

from helpers import (
    IST,
    InMemoryDailyCounterRepository,
    UnavailableDailyCounterRepository,
    ist,
    make_order_dto,
)
from modules.orders.constants import OrderStatus
from modules.orders.events import OrderPlaced, OrderRedeemed, OrderStatusChanged
from modules.orders.exceptions import (
    AlreadyRedeemed,
    InvalidTransition,
    NotReady,
    OrderNotFound,
    PaymentAmountMismatch,
    StaleOrder,
    TokenExpired,
)
from modules.orders.lifecycle import OrderLifecycleGuard
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.tokens.allocator import SyntheticStrategy, TokenAllocator
from modules.tokens.exceptions import AllocationFailed
from modules.tokens.repositories.interfaces import IDailyCounterRepository

pytestmark = pytest.mark.unit


def _ready_order(service, payment_id="pay_001", now=None):
    now = now or ist(2024, 3, 1, 9, 0)
    order, _ = service.create_order(make_order_dto(payment_id), now=now)
    service.transition(order.id, OrderStatus.PREPARING, now=now)
    return service.transition(order.id, OrderStatus.READY, now=now)


class _StuckCounter(IDailyCounterRepository):
    """Hands out the same number forever (a broken store)."""

    def increment(self, date_key: date) -> int:
        return 1


class _BrokenCounter(IDailyCounterRepository):
    def increment(self, date_key: date) -> int:
        raise OperationalError("server closed the connection unexpectedly")


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


class TestCreateOrder:
    def test_first_order_of_the_day_gets_t001(self, order_service):
        order, created = order_service.create_order(
            make_order_dto(), now=ist(2024, 3, 1, 9, 0)
        )
        assert created
        assert order.token == "T-001"
        assert order.token_is_sequential
        assert order.civil_date == date(2024, 3, 1)
        assert order.status == OrderStatus.PENDING
        assert order.created_at == ist(2024, 3, 1, 9, 0)
        assert order.total_amount == Decimal("95.00")
        assert [item.name for item in order.items.all()] == ["Masala Dosa", "Filter Coffee"]

    def test_creation_is_recorded_in_history(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        history = OrderStatusHistory.objects.get(order=order)
        assert history.old_status is None
        assert history.new_status == OrderStatus.PENDING

    def test_tokens_are_sequential_within_a_day(self, order_service):
        tokens = [
            order_service.create_order(
                make_order_dto(f"pay_{index}"), now=ist(2024, 3, 1, 9, index)
            )[0].token
            for index in range(3)
        ]
        assert tokens == ["T-001", "T-002", "T-003"]

    def test_token_literal_recurs_on_the_next_day(self, order_service):
        first, _ = order_service.create_order(make_order_dto("pay_a"), now=ist(2024, 3, 1, 9, 0))
        second, _ = order_service.create_order(make_order_dto("pay_b"), now=ist(2024, 3, 2, 9, 0))
        assert first.token == second.token == "T-001"
        assert first.civil_date != second.civil_date

    def test_same_payment_returns_existing_order(self, order_service):
        first, created_first = order_service.create_order(
            make_order_dto("pay_dup"), now=ist(2024, 3, 1, 9, 0)
        )
        second, created_second = order_service.create_order(
            make_order_dto("pay_dup"), now=ist(2024, 3, 1, 9, 1)
        )
        assert created_first and not created_second
        assert second.id == first.id
        assert Order.objects.count() == 1

    def test_amount_mismatch_rejected(self, order_service):
        dto = make_order_dto(total_amount=Decimal("90.00"))
        with pytest.raises(PaymentAmountMismatch):
            order_service.create_order(dto, now=ist(2024, 3, 1, 9, 0))
        assert Order.objects.count() == 0

    def test_one_paisa_rounding_is_tolerated(self, order_service):
        dto = make_order_dto(total_amount=Decimal("95.01"))
        order, created = order_service.create_order(dto, now=ist(2024, 3, 1, 9, 0))
        assert created

    def test_allocation_failure_persists_nothing(self, order_repository):
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(UnavailableDailyCounterRepository(), tz=IST),
            guard=OrderLifecycleGuard(IST),
        )
        with pytest.raises(AllocationFailed):
            service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        assert Order.objects.count() == 0

    def test_store_error_during_allocation_is_allocation_failed(self, order_repository):
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(_BrokenCounter(), tz=IST),
            guard=OrderLifecycleGuard(IST),
        )
        with pytest.raises(AllocationFailed):
            service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))

    def test_synthetic_token_when_counter_unavailable(self, order_repository):
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(
                UnavailableDailyCounterRepository(),
                tz=IST,
                fallback=SyntheticStrategy(
                    prefix="T", tz=IST, token_in_use=order_repository.token_exists
                ),
            ),
            guard=OrderLifecycleGuard(IST),
        )
        order, _ = service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        assert not order.token_is_sequential
        assert order.token.startswith("T-090000000-")

    def test_duplicate_token_in_a_day_is_rejected(self, order_repository):
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(_StuckCounter(), tz=IST),
            guard=OrderLifecycleGuard(IST),
        )
        service.create_order(make_order_dto("pay_a"), now=ist(2024, 3, 1, 9, 0))
        with pytest.raises(AllocationFailed):
            service.create_order(make_order_dto("pay_b"), now=ist(2024, 3, 1, 9, 5))
        assert Order.objects.count() == 1

    def test_publishes_order_placed(self, order_repository, counter_repository):
        bus = MagicMock()
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(counter_repository, tz=IST),
            guard=OrderLifecycleGuard(IST),
            event_bus=bus,
        )
        order, _ = service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        event = bus.publish.call_args.args[0]
        assert isinstance(event, OrderPlaced)
        assert event.aggregate_id == order.id
        assert event.token == "T-001"


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------


class TestTransition:
    def test_full_kitchen_flow(self, order_service):
        now = ist(2024, 3, 1, 9, 0)
        order, _ = order_service.create_order(make_order_dto(), now=now)
        order = order_service.transition(order.id, OrderStatus.PREPARING, now=now, actor="chef")
        assert order.status == OrderStatus.PREPARING
        order = order_service.transition(order.id, OrderStatus.READY, now=now)
        assert order.status == OrderStatus.READY

        transitions = OrderStatusHistory.objects.filter(order=order, old_status__isnull=False)
        assert {(h.old_status, h.new_status) for h in transitions} == {
            (OrderStatus.PENDING, OrderStatus.PREPARING),
            (OrderStatus.PREPARING, OrderStatus.READY),
        }
        assert transitions.filter(actor="chef").count() == 1

    def test_ready_to_pending_is_invalid(self, order_service):
        order = _ready_order(order_service)
        with pytest.raises(InvalidTransition):
            order_service.transition(order.id, OrderStatus.PENDING, now=ist(2024, 3, 1, 9, 10))
        order.refresh_from_db()
        assert order.status == OrderStatus.READY

    def test_completing_yesterdays_order_is_stale(self, order_service):
        order = _ready_order(order_service, now=ist(2024, 3, 1, 21, 0))
        with pytest.raises(StaleOrder):
            order_service.transition(order.id, OrderStatus.COMPLETED, now=ist(2024, 3, 2, 8, 0))
        order.refresh_from_db()
        assert order.status == OrderStatus.READY

    def test_preparing_overnight_may_become_ready(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 21, 0))
        order_service.transition(order.id, OrderStatus.PREPARING, now=ist(2024, 3, 1, 21, 0))
        order = order_service.transition(order.id, OrderStatus.READY, now=ist(2024, 3, 2, 8, 0))
        assert order.status == OrderStatus.READY

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.transition("0190d5e4-0000-7000-8000-000000000000", OrderStatus.READY)

    def test_malformed_id_is_not_found(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.transition("not-a-uuid", OrderStatus.READY)

    def test_publishes_status_changed(self, order_repository, counter_repository):
        bus = MagicMock()
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(counter_repository, tz=IST),
            guard=OrderLifecycleGuard(IST),
            event_bus=bus,
        )
        now = ist(2024, 3, 1, 9, 0)
        order, _ = service.create_order(make_order_dto(), now=now)
        service.transition(order.id, OrderStatus.PREPARING, now=now)
        event = bus.publish.call_args.args[0]
        assert isinstance(event, OrderStatusChanged)
        assert (event.old_status, event.new_status) == (OrderStatus.PENDING, OrderStatus.PREPARING)


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------


class TestRedeemByToken:
    def test_happy_path(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        assert order.token == "T-001"
        order_service.transition(order.id, OrderStatus.PREPARING, now=ist(2024, 3, 1, 9, 5))
        order_service.transition(order.id, OrderStatus.READY, now=ist(2024, 3, 1, 9, 15))

        redeemed = order_service.redeem_by_token("T-001", now=ist(2024, 3, 1, 9, 20))
        assert redeemed.id == order.id
        assert redeemed.status == OrderStatus.COMPLETED
        assert OrderStatusHistory.objects.filter(
            order=order, new_status=OrderStatus.COMPLETED, actor="scan"
        ).exists()

    def test_stale_pickup(self, order_service):
        order = _ready_order(order_service, now=ist(2024, 3, 1, 21, 0))
        with pytest.raises(TokenExpired):
            order_service.redeem_by_token(order.token, now=ist(2024, 3, 2, 8, 0))
        order.refresh_from_db()
        assert order.status == OrderStatus.READY

    def test_double_redemption(self, order_service):
        order = _ready_order(order_service)
        order_service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 20))
        with pytest.raises(AlreadyRedeemed):
            order_service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 21))
        assert OrderStatusHistory.objects.filter(
            order=order, new_status=OrderStatus.COMPLETED
        ).count() == 1

    def test_not_ready(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        with pytest.raises(NotReady):
            order_service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 5))

    def test_unknown_token(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.redeem_by_token("T-999", now=ist(2024, 3, 1, 9, 0))

    def test_resolves_todays_holder_of_a_recurring_token(self, order_service):
        yesterday = _ready_order(order_service, "pay_a", now=ist(2024, 3, 1, 9, 0))
        today = _ready_order(order_service, "pay_b", now=ist(2024, 3, 2, 9, 0))
        assert yesterday.token == today.token

        redeemed = order_service.redeem_by_token(today.token, now=ist(2024, 3, 2, 9, 30))
        assert redeemed.id == today.id
        yesterday.refresh_from_db()
        assert yesterday.status == OrderStatus.READY

    def test_publishes_order_redeemed(self, order_repository, counter_repository):
        bus = MagicMock()
        service = OrderService(
            order_repository=order_repository,
            token_allocator=TokenAllocator(counter_repository, tz=IST),
            guard=OrderLifecycleGuard(IST),
            event_bus=bus,
        )
        order = _ready_order(service)
        service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 20))
        event = bus.publish.call_args.args[0]
        assert isinstance(event, OrderRedeemed)
        assert event.token == order.token


# ---------------------------------------------------------------------------
# Races on the conditional update
# ---------------------------------------------------------------------------


class _RacingOrderRepository(OrderDjangoRepository):
    """Lets a competing writer commit ``competitor_status`` just before our update."""

    def __init__(self, competitor_status: str) -> None:
        self.competitor_status = competitor_status

    def update_status_if(self, id, expected, new_status, at):
        Order.objects.filter(id=id).update(status=self.competitor_status)
        return super().update_status_if(id, expected, new_status, at)


class TestLostRace:
    def _service(self, repository):
        return OrderService(
            order_repository=repository,
            token_allocator=TokenAllocator(InMemoryDailyCounterRepository(), tz=IST),
            guard=OrderLifecycleGuard(IST),
        )

    def test_concurrent_redemption_loser_gets_already_redeemed(self, order_service):
        order = _ready_order(order_service)
        racing = self._service(_RacingOrderRepository(OrderStatus.COMPLETED))
        with pytest.raises(AlreadyRedeemed):
            racing.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 20))

    def test_concurrent_transition_loser_is_rejected(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        racing = self._service(_RacingOrderRepository(OrderStatus.COMPLETED))
        with pytest.raises(InvalidTransition):
            racing.transition(order.id, OrderStatus.PREPARING, now=ist(2024, 3, 1, 9, 5))
        assert not OrderStatusHistory.objects.filter(
            order=order, new_status=OrderStatus.PREPARING
        ).exists()


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


class TestLookupToken:
    def test_queue_position_counts_earlier_open_orders(self, order_service):
        first, _ = order_service.create_order(make_order_dto("pay_a"), now=ist(2024, 3, 1, 9, 0))
        second, _ = order_service.create_order(make_order_dto("pay_b"), now=ist(2024, 3, 1, 9, 1))
        third, _ = order_service.create_order(make_order_dto("pay_c"), now=ist(2024, 3, 1, 9, 2))

        lookup = order_service.lookup_token(third.token, now=ist(2024, 3, 1, 9, 3))
        assert lookup.order.id == third.id
        assert lookup.queue_position == 3

        order_service.transition(first.id, OrderStatus.PREPARING, now=ist(2024, 3, 1, 9, 4))
        order_service.transition(first.id, OrderStatus.READY, now=ist(2024, 3, 1, 9, 5))
        assert order_service.lookup_token(third.token, now=ist(2024, 3, 1, 9, 6)).queue_position == 2

    def test_ready_order_has_no_queue_position(self, order_service):
        order = _ready_order(order_service)
        lookup = order_service.lookup_token(order.token, now=ist(2024, 3, 1, 9, 10))
        assert lookup.queue_position is None

    def test_yesterdays_token_is_expired(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 21, 0))
        with pytest.raises(TokenExpired):
            order_service.lookup_token(order.token, now=ist(2024, 3, 2, 8, 0))

    def test_unknown_token(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.lookup_token("T-404", now=ist(2024, 3, 1, 9, 0))


class TestFindActiveOrder:
    def test_by_email(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        found = order_service.find_active_order(email="AARAV@example.com", now=ist(2024, 3, 1, 9, 5))
        assert found.id == order.id

    def test_by_phone(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        found = order_service.find_active_order(phone="9876543210", now=ist(2024, 3, 1, 9, 5))
        assert found.id == order.id

    def test_completed_orders_are_not_active(self, order_service):
        order = _ready_order(order_service)
        order_service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 20))
        with pytest.raises(OrderNotFound):
            order_service.find_active_order(email="aarav@example.com", now=ist(2024, 3, 1, 9, 30))

    def test_open_order_from_yesterday_is_expired(self, order_service):
        order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 21, 0))
        with pytest.raises(TokenExpired):
            order_service.find_active_order(email="aarav@example.com", now=ist(2024, 3, 2, 8, 0))

    def test_unknown_contact(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.find_active_order(email="nobody@example.com", now=ist(2024, 3, 1, 9, 0))


class TestCheckToken:
    def test_ready_token_passes_without_redeeming(self, order_service):
        order = _ready_order(order_service)
        checked = order_service.check_token(order.token, now=ist(2024, 3, 1, 9, 10))
        assert checked.id == order.id
        assert Order.objects.get(id=order.id).status == OrderStatus.READY
        assert OrderStatusHistory.objects.filter(order=order).count() == 3

    def test_pending_token_is_not_ready(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        with pytest.raises(NotReady):
            order_service.check_token(order.token, now=ist(2024, 3, 1, 9, 1))

    def test_redeemed_token(self, order_service):
        order = _ready_order(order_service)
        order_service.redeem_by_token(order.token, now=ist(2024, 3, 1, 9, 20))
        with pytest.raises(AlreadyRedeemed):
            order_service.check_token(order.token, now=ist(2024, 3, 1, 9, 21))

    def test_yesterdays_ready_token_is_expired(self, order_service):
        order = _ready_order(order_service, now=ist(2024, 3, 1, 21, 0))
        with pytest.raises(TokenExpired):
            order_service.check_token(order.token, now=ist(2024, 3, 2, 8, 0))


class TestCustomerOrders:
    def test_lists_every_day_for_the_email(self, order_service):
        order_service.create_order(make_order_dto("pay_a"), now=ist(2024, 3, 1, 9, 0))
        order_service.create_order(make_order_dto("pay_b"), now=ist(2024, 3, 2, 9, 0))
        order_service.create_order(
            make_order_dto("pay_c", customer_email="diya@example.com"),
            now=ist(2024, 3, 2, 9, 5),
        )
        orders = order_service.list_customer_orders("Aarav@Example.com")
        assert sorted(order.payment_id for order in orders) == ["pay_a", "pay_b"]

    def test_status_filter(self, order_service):
        ready = _ready_order(order_service, "pay_a")
        order_service.create_order(make_order_dto("pay_b"), now=ist(2024, 3, 1, 9, 5))
        orders = order_service.list_customer_orders("aarav@example.com", status="ready")
        assert [order.id for order in orders] == [ready.id]

    def test_get_own_order(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        assert order_service.get_customer_order(str(order.id), "aarav@example.com").id == order.id

    def test_other_customers_order_is_not_found(self, order_service):
        order, _ = order_service.create_order(make_order_dto(), now=ist(2024, 3, 1, 9, 0))
        with pytest.raises(OrderNotFound):
            order_service.get_customer_order(str(order.id), "diya@example.com")
