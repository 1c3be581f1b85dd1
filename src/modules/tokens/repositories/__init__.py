"""Daily counter repositories package."""

from modules.tokens.repositories.django_repository import DailyCounterDjangoRepository
from modules.tokens.repositories.interfaces import IDailyCounterRepository

__all__ = ["IDailyCounterRepository", "DailyCounterDjangoRepository"]
