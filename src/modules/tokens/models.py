"""Per-day token counter.

One row per civil date.  The row is advanced exclusively through the
repository's atomic increment; nothing reads it, adds one and writes it
back.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class DailyCounter(BaseModel):
    """Sequence state for the pickup tokens of one civil day."""

    date_key: models.DateField = models.DateField(unique=True)
    counter: models.PositiveIntegerField = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "daily_counters"
        ordering = ["-date_key"]

    def __str__(self) -> str:
        return f"{self.date_key:%Y-%m-%d}: {self.counter}"
