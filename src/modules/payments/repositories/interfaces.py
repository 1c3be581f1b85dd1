"""Charge intent repository interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Optional

if TYPE_CHECKING:
    from modules.payments.models import ChargeIntent


class IChargeIntentRepository(ABC):
    @abstractmethod
    def create(self, data: Dict[str, Any]) -> ChargeIntent:
        """Persist a new open checkout."""

    @abstractmethod
    def get_for_customer(self, gateway_order_id: str, email: str) -> Optional[ChargeIntent]:
        """The checkout opened for *gateway_order_id* by the customer *email*."""

    @abstractmethod
    def mark_paid(self, intent_id: Any, payment_id: str) -> bool:
        """Close an open checkout; ``False`` when it was already paid."""
