"""Order lifecycle guard.

Pure validation: given an order snapshot, a target and "now", decide whether
the step is allowed.  No I/O happens here; the service pairs each check
with a conditional update keyed on the status it validated against.

Rules:
- Only edges in ``VALID_TRANSITIONS`` are allowed; status never regresses
  and ``completed`` is terminal.
- Edges into ``completed`` additionally require the order to have been
  created on the current civil day.  Edges among the open states are not
  date-gated (an order may sit in ``preparing`` overnight).
- A token is redeemable only on its own civil day and only while ``ready``.
"""

from __future__ import annotations

from datetime import datetime, tzinfo
from typing import TYPE_CHECKING, Optional

from modules.core.civil_time import civil_date, get_civil_timezone, is_same_civil_day
from modules.orders.constants import (
    SAME_DAY_TARGETS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
)
from modules.orders.exceptions import (
    AlreadyRedeemed,
    InvalidTransition,
    NotReady,
    StaleOrder,
    TokenExpired,
)

if TYPE_CHECKING:
    from modules.orders.models import Order


class OrderLifecycleGuard:
    """State machine plus the same-civil-day completion rule."""

    def __init__(self, tz: Optional[tzinfo] = None) -> None:
        self.tz = tz or get_civil_timezone()

    def is_from_today(self, order: Order, now: datetime) -> bool:
        return is_same_civil_day(order.created_at, now, self.tz)

    def check_transition(self, order: Order, target: str, now: datetime) -> None:
        """Validate ``order.status -> target`` at instant *now*.

        Raises:
            InvalidTransition: the edge is not in the state machine.
            StaleOrder: a completion-bound edge on an order from a prior day.
        """
        allowed = VALID_TRANSITIONS.get(order.status, set())
        if target not in allowed:
            raise InvalidTransition(
                f"Cannot transition from {order.status} to {target}."
            )
        if target in SAME_DAY_TARGETS and not self.is_from_today(order, now):
            created_on = civil_date(order.created_at, self.tz)
            raise StaleOrder(
                f"Cannot mark an order from {created_on.isoformat()} as {target}. "
                "Order must be from today."
            )

    def check_redeemable(self, order: Order, now: datetime) -> None:
        """Validate that *order* may be closed out by a pickup scan.

        Raises:
            TokenExpired: the order belongs to an earlier civil day.
            AlreadyRedeemed: the order is already completed.
            NotReady: the kitchen has not marked the order ready.
        """
        if not self.is_from_today(order, now):
            raise TokenExpired()
        if order.status in TERMINAL_STATES:
            raise AlreadyRedeemed()
        if order.status != OrderStatus.READY:
            raise NotReady(f"Order {order.token} is still {order.status}.")
