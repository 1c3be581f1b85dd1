"""Token allocation exceptions.

``CounterUnavailable`` and ``SyntheticTokenExhausted`` are internal to the
allocator: each strategy raises one when it cannot produce a token.  Only
``AllocationFailed`` crosses the service boundary, and it always aborts
order creation.
"""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class TokenStrategyError(Exception):
    """A token strategy could not produce a value."""


class CounterUnavailable(TokenStrategyError):
    """The store's atomic daily-counter primitive failed or timed out."""


class SyntheticTokenExhausted(TokenStrategyError):
    """Every synthetic candidate collided with a token already used today."""


class AllocationFailed(DomainError):
    """No pickup token could be allocated; the order was not created."""

    code = "allocation_failed"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
