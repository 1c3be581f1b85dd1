"""Django ORM implementation of the daily counter repository.

PostgreSQL gets a single-statement upsert
(``INSERT ... ON CONFLICT DO UPDATE ... RETURNING``), which is race-free
without any explicit lock.  Other backends fall back to ``get_or_create``
followed by an ``F()`` increment on the row locked with
``select_for_update()``, all inside one transaction.
"""

from __future__ import annotations

from datetime import date

import structlog
import uuid6
from django.db import DatabaseError, connection, transaction
from django.db.models import F
from django.utils import timezone

from modules.tokens.exceptions import CounterUnavailable
from modules.tokens.models import DailyCounter
from modules.tokens.repositories.interfaces import IDailyCounterRepository

logger = structlog.get_logger(__name__)

_POSTGRES_UPSERT = """
    INSERT INTO daily_counters (id, date_key, counter, created_at, updated_at)
    VALUES (%s, %s, 1, NOW(), NOW())
    ON CONFLICT (date_key)
    DO UPDATE SET counter = daily_counters.counter + 1, updated_at = NOW()
    RETURNING counter
"""


class DailyCounterDjangoRepository(IDailyCounterRepository):
    """Concrete daily counter backed by the ``daily_counters`` table."""

    def increment(self, date_key: date) -> int:
        try:
            if connection.vendor == "postgresql":
                value = self._upsert_increment(date_key)
            else:
                value = self._locked_increment(date_key)
        except DatabaseError as exc:
            logger.error(
                "token.counter_increment_failed",
                date_key=date_key.isoformat(),
                error=str(exc),
            )
            raise CounterUnavailable(
                f"Daily counter for {date_key.isoformat()} unavailable: {exc}"
            ) from exc

        logger.debug("token.counter_incremented", date_key=date_key.isoformat(), value=value)
        return value

    @staticmethod
    def _upsert_increment(date_key: date) -> int:
        with connection.cursor() as cursor:
            cursor.execute(_POSTGRES_UPSERT, [uuid6.uuid7(), date_key])
            row = cursor.fetchone()
        return int(row[0])

    @staticmethod
    @transaction.atomic
    def _locked_increment(date_key: date) -> int:
        # get_or_create absorbs the IntegrityError of a concurrent first insert
        DailyCounter.objects.get_or_create(date_key=date_key)
        row = DailyCounter.objects.select_for_update().get(date_key=date_key)
        DailyCounter.objects.filter(pk=row.pk).update(
            counter=F("counter") + 1, updated_at=timezone.now()
        )
        row.refresh_from_db(fields=["counter"])
        return row.counter
