"""
Rate limiting module for privsalary.

Per-address, per-kind cooldown enforcement. One cooldown duration applies
to every kind.

A call that passes the cooldown check is recorded immediately, before the
guarded operation runs. If the operation then fails, the record stands:
a partially failing call still costs the caller a cooldown window.
"""

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Dict, Optional, Tuple

from .access import require_not_paused
from .errors import CooldownActiveError, InvalidParameterError
from .events import EventKind
from .logging_config import audit_log

if TYPE_CHECKING:
    from .state import SystemState

logger = logging.getLogger(__name__)


class OperationKind(str, Enum):
    SUBMISSION = "submission"
    DECRYPTION_REQUEST = "decryption_request"


@dataclass
class RateLimitResult:
    """Result of a cooldown check."""
    allowed: bool
    next_allowed_at: float
    retry_after: Optional[float] = None


class RateLimiter:
    """
    Cooldown rate limiter.

    Not thread-safe on its own; the aggregator serializes every entry point.
    """

    def __init__(self, cooldown_seconds: int, clock: Callable[[], float] = time.monotonic):
        """
        Initialize rate limiter.

        Args:
            cooldown_seconds: Minimum seconds between two accepted calls
                from one address for one kind. Must be > 0.
            clock: Monotonic time source
        """
        self.validate(cooldown_seconds)
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._last: Dict[Tuple[str, OperationKind], float] = {}

    @staticmethod
    def validate(value) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise InvalidParameterError(
                "cooldown must be a strictly positive integer",
                {"value": value}
            )

    @property
    def cooldown(self) -> int:
        return self._cooldown

    def now(self) -> float:
        return self._clock()

    def set_cooldown(self, value: int) -> None:
        self.validate(value)
        self._cooldown = value

    def last_call(self, address: str, kind: OperationKind) -> Optional[float]:
        return self._last.get((address, kind))

    def check(self, address: str, kind: OperationKind, now: Optional[float] = None) -> RateLimitResult:
        """Check without recording."""
        now = self.now() if now is None else now
        last = self._last.get((address, kind))
        if last is None:
            return RateLimitResult(allowed=True, next_allowed_at=now)

        next_allowed_at = last + self._cooldown
        if now < next_allowed_at:
            return RateLimitResult(
                allowed=False,
                next_allowed_at=next_allowed_at,
                retry_after=next_allowed_at - now
            )
        return RateLimitResult(allowed=True, next_allowed_at=next_allowed_at)

    def check_and_record(self, address: str, kind: OperationKind, now: Optional[float] = None) -> None:
        """
        Accept or reject a call.

        Raises:
            CooldownActiveError: if now < last(address, kind) + cooldown
        """
        now = self.now() if now is None else now
        result = self.check(address, kind, now)
        if not result.allowed:
            audit_log.rate_limit_exceeded(address, kind.value, result.retry_after)
            raise CooldownActiveError(
                f"cooldown active for {address} ({kind.value})",
                retry_after=result.retry_after
            )
        self._last[(address, kind)] = now
        logger.debug("recorded %s call from %s at %s", kind.value, address, now)


def set_cooldown_seconds(state: "SystemState", caller: str, value: int) -> None:
    state.roles.require_owner(caller)
    require_not_paused(state)
    state.rate_limiter.validate(value)
    state.events.append(EventKind.COOLDOWN_CHANGED, {
        "previous_seconds": state.rate_limiter.cooldown,
        "cooldown_seconds": value,
    })
    state.rate_limiter.set_cooldown(value)
