"""Charge intent repositories package."""

from modules.payments.repositories.django_repository import ChargeIntentDjangoRepository
from modules.payments.repositories.interfaces import IChargeIntentRepository

__all__ = ["IChargeIntentRepository", "ChargeIntentDjangoRepository"]
