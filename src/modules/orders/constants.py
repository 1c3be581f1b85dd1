"""Order domain constants.

Defines status choices and the valid status transitions of the order
state machine.  ``completed`` is the only terminal state and the only
target gated on the civil day of creation.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PREPARING = "preparing", "Preparing"
    READY = "ready", "Ready for pickup"
    COMPLETED = "completed", "Completed"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING: {OrderStatus.PREPARING, OrderStatus.COMPLETED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.COMPLETED},
    OrderStatus.READY: {OrderStatus.COMPLETED},
    OrderStatus.COMPLETED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.COMPLETED}

# Targets that close an order out; allowed only on the day of creation.
SAME_DAY_TARGETS: set[str] = {OrderStatus.COMPLETED}

ACTIVE_STATES: set[str] = {
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
    OrderStatus.READY,
}

# Orders still waiting on the kitchen; used for queue positions.
QUEUED_STATES: set[str] = {OrderStatus.PENDING, OrderStatus.PREPARING}

# Tolerance when comparing the paid amount with the item snapshot (1 paisa).
AMOUNT_TOLERANCE = "0.01"
