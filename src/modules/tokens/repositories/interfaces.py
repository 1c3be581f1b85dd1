"""Daily counter repository interface.

The allocator's only dependency on the store: a per-key atomic
increment-or-create with linearizable results per ``date_key``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import date


class IDailyCounterRepository(ABC):
    """Contract for the atomic daily counter primitive."""

    @abstractmethod
    def increment(self, date_key: date) -> int:
        """Atomically advance the counter for *date_key* and return the new value.

        The first call for a given date returns ``1``.  Concurrent callers
        for the same date always observe distinct values.

        Raises:
            CounterUnavailable: the store could not complete the increment
                (connection loss, lock timeout, ...).  The increment must be
                treated as not having happened from the caller's view.
        """
