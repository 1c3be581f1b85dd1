"""Order domain exceptions.

Raised by the Service Layer and the lifecycle guard when business rules
are violated.  Each carries a stable ``code`` and the HTTP status the API
layer answers with (see ``modules.core.exceptions``).
"""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class OrderNotFound(DomainError):
    """The requested order does not exist."""

    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class InvalidTransition(DomainError):
    """The requested status change is not an edge of the order state machine."""

    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT


class StaleOrder(DomainError):
    """The order was created on an earlier day and can no longer be completed."""

    code = "stale_order"
    status_code = status.HTTP_400_BAD_REQUEST


class TokenExpired(DomainError):
    """Token expired. Valid only on order date."""

    code = "token_expired"
    status_code = status.HTTP_400_BAD_REQUEST


class AlreadyRedeemed(DomainError):
    """Order already completed."""

    code = "already_redeemed"
    status_code = status.HTTP_409_CONFLICT


class NotReady(DomainError):
    """The order is not ready for pickup yet."""

    code = "not_ready"
    status_code = status.HTTP_409_CONFLICT


class PaymentAmountMismatch(DomainError):
    """The paid amount does not match the ordered items."""

    code = "payment_amount_mismatch"
    status_code = status.HTTP_400_BAD_REQUEST
