"""Django ORM implementation of the charge intent repository."""

from __future__ import annotations

from typing import Any, Dict, Optional

from django.utils import timezone

from modules.payments.constants import ChargeIntentStatus
from modules.payments.models import ChargeIntent
from modules.payments.repositories.interfaces import IChargeIntentRepository


class ChargeIntentDjangoRepository(IChargeIntentRepository):
    def create(self, data: Dict[str, Any]) -> ChargeIntent:
        return ChargeIntent.objects.create(**data)

    def get_for_customer(self, gateway_order_id: str, email: str) -> Optional[ChargeIntent]:
        return ChargeIntent.objects.filter(
            gateway_order_id=gateway_order_id, customer_email__iexact=email
        ).first()

    def mark_paid(self, intent_id: Any, payment_id: str) -> bool:
        updated = ChargeIntent.objects.filter(
            id=intent_id, status=ChargeIntentStatus.OPEN
        ).update(
            status=ChargeIntentStatus.PAID,
            payment_id=payment_id,
            updated_at=timezone.now(),
        )
        return updated == 1
