"""Daily pickup token allocation.

Two strategies sit behind the same interface and produce a tagged result:

- ``SequentialStrategy`` (primary): ``T-001``, ``T-002``, ... advanced by the
  store's atomic per-day counter.  Numbers are unique and increase in commit
  order within a civil day; they restart at ``001`` at civil midnight.
- ``SyntheticStrategy`` (degraded mode): ``T-142305123-9F3A`` built from the
  civil wall-clock time and a random suffix.  Unique, not sequential.  Used
  only when the counter primitive is unavailable.

Callers can tell them apart through ``AllocatedToken.is_sequential``.  The
allocator keeps no state between calls; all exclusion is delegated to the
store.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Callable, Optional, Protocol, Union

import structlog

from modules.core.civil_time import civil_date, get_civil_timezone
from modules.tokens.constants import (
    DEFAULT_TOKEN_PREFIX,
    SEQUENCE_WIDTH,
    SYNTHETIC_TOKEN_MAX_RETRIES,
)
from modules.tokens.exceptions import (
    AllocationFailed,
    SyntheticTokenExhausted,
    TokenStrategyError,
)
from modules.tokens.repositories.interfaces import IDailyCounterRepository

logger = structlog.get_logger(__name__)

TokenInUse = Callable[[str, date], bool]


# ---------------------------------------------------------------------------
# Token values
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SequentialToken:
    """Counter-backed token; guaranteed unique and sequential for its day."""

    prefix: str
    number: int
    date_key: date

    is_sequential = True

    @property
    def value(self) -> str:
        return f"{self.prefix}-{self.number:0{SEQUENCE_WIDTH}d}"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SyntheticToken:
    """Fallback token; unique for its day but carries no sequence."""

    value: str
    date_key: date

    is_sequential = False

    def __str__(self) -> str:
        return self.value


AllocatedToken = Union[SequentialToken, SyntheticToken]


# ---------------------------------------------------------------------------
# Strategies
# ---------------------------------------------------------------------------


class TokenStrategy(Protocol):
    def allocate(self, now: datetime, date_key: date) -> AllocatedToken: ...


class SequentialStrategy:
    """Mint ``<prefix>-<NNN>`` from the store's atomic daily counter."""

    def __init__(self, counter_repository: IDailyCounterRepository, prefix: str) -> None:
        self._counters = counter_repository
        self._prefix = prefix

    def allocate(self, now: datetime, date_key: date) -> SequentialToken:
        number = self._counters.increment(date_key)
        return SequentialToken(prefix=self._prefix, number=number, date_key=date_key)


class SyntheticStrategy:
    """Mint ``<prefix>-<HHMMSSmmm>-<XXXX>`` from the wall clock and ``secrets``.

    ``token_in_use`` answers whether a value is already taken on a given
    civil day; a colliding candidate is discarded and a new one drawn, up to
    ``max_retries`` times.
    """

    def __init__(
        self,
        prefix: str,
        tz: tzinfo,
        token_in_use: Optional[TokenInUse] = None,
        max_retries: int = SYNTHETIC_TOKEN_MAX_RETRIES,
    ) -> None:
        self._prefix = prefix
        self._tz = tz
        self._token_in_use = token_in_use
        self._max_retries = max_retries

    def candidate(self, now: datetime) -> str:
        local = now.astimezone(self._tz)
        millis = local.microsecond // 1000
        suffix = secrets.token_hex(2).upper()
        return f"{self._prefix}-{local:%H%M%S}{millis:03d}-{suffix}"

    def allocate(self, now: datetime, date_key: date) -> SyntheticToken:
        for _ in range(self._max_retries):
            value = self.candidate(now)
            if self._token_in_use is None or not self._token_in_use(value, date_key):
                return SyntheticToken(value=value, date_key=date_key)
            logger.warning("token.synthetic_collision", token=value)
        raise SyntheticTokenExhausted(
            f"No free synthetic token after {self._max_retries} attempts."
        )


# ---------------------------------------------------------------------------
# Allocator
# ---------------------------------------------------------------------------


class TokenAllocator:
    """Produce a pickup token that is unique within the civil day of ``now``."""

    def __init__(
        self,
        counter_repository: IDailyCounterRepository,
        prefix: str = DEFAULT_TOKEN_PREFIX,
        tz: Optional[tzinfo] = None,
        fallback: Optional[TokenStrategy] = None,
    ) -> None:
        self.tz = tz or get_civil_timezone()
        self.prefix = prefix
        self._primary = SequentialStrategy(counter_repository, prefix)
        self._fallback = fallback

    def allocate(self, now: datetime) -> AllocatedToken:
        """Allocate the next token for the civil day containing *now*.

        Raises:
            AllocationFailed: the counter is unavailable and the fallback is
                disabled or exhausted.
        """
        date_key = civil_date(now, self.tz)
        log = logger.bind(date_key=date_key.isoformat())

        try:
            token: AllocatedToken = self._primary.allocate(now, date_key)
        except TokenStrategyError as exc:
            log.warning("token.counter_unavailable", error=str(exc))
            if self._fallback is None:
                raise AllocationFailed(
                    "Token counter unavailable and no fallback configured."
                ) from exc
            try:
                token = self._fallback.allocate(now, date_key)
            except TokenStrategyError as fallback_exc:
                log.error("token.allocation_failed", error=str(fallback_exc))
                raise AllocationFailed(
                    "Token counter unavailable and fallback exhausted."
                ) from fallback_exc
            log.warning("token.allocated_synthetic", token=token.value)
            return token

        log.info("token.allocated", token=token.value)
        return token
