"""Civil-day arithmetic for the canteen's fixed timezone.

"Today" is a wall-clock concept: two instants belong to the same day when
their calendar dates match after conversion to the configured civil zone.
Raw instants or elapsed hours are never compared.  Every helper takes the
zone explicitly so nothing depends on the host's local time or on Django's
``TIME_ZONE``.
"""

from __future__ import annotations

from datetime import date, datetime, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from django.conf import settings
from django.utils import timezone


def get_civil_timezone(name: Optional[str] = None) -> ZoneInfo:
    """Return the canteen's civil timezone (``CANTEEN_TIMEZONE`` setting)."""
    return ZoneInfo(name or settings.CANTEEN_TIMEZONE)


def _require_aware(instant: datetime) -> None:
    if timezone.is_naive(instant):
        raise ValueError(f"Expected a timezone-aware datetime, got {instant!r}.")


def civil_date(instant: datetime, tz: tzinfo) -> date:
    """Calendar date of *instant* as seen on a wall clock in *tz*."""
    _require_aware(instant)
    return instant.astimezone(tz).date()


def is_same_civil_day(a: datetime, b: datetime, tz: tzinfo) -> bool:
    """``True`` when *a* and *b* fall on the same calendar date in *tz*."""
    return civil_date(a, tz) == civil_date(b, tz)


class CivilClock:
    """Injectable clock bound to a civil timezone.

    Services take a clock instead of calling ``timezone.now()`` directly so
    tests can pin "now" to a fixed instant.
    """

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        now_func: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.tz = tz or get_civil_timezone()
        self._now_func = now_func or timezone.now

    def now(self) -> datetime:
        return self._now_func()

    def today(self) -> date:
        return civil_date(self.now(), self.tz)

    def civil_date(self, instant: datetime) -> date:
        return civil_date(instant, self.tz)

    def is_today(self, instant: datetime, now: Optional[datetime] = None) -> bool:
        return is_same_civil_day(instant, now or self.now(), self.tz)
