"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderPlaced(DomainEvent):
    """Raised when a paid order is persisted with its pickup token."""

    token: str


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised when staff move an order to another status."""

    old_status: str
    new_status: str


@dataclass(frozen=True, kw_only=True)
class OrderRedeemed(DomainEvent):
    """Raised when a pickup token is scanned and the order completed."""

    token: str
