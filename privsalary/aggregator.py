"""
privsalary Aggregator

SalaryAggregator is the single entry point for callers. Every public
operation runs under one re-entrant lock, so entry points never interleave.
The only asynchrony is the oracle callback, which also enters through
``on_decryption_result`` and takes the same lock.

Usage:
    scheme = HandleScheme()
    oracle = LocalDecryptionOracle(scheme)
    scheme.trust_oracle_key(oracle.kid, oracle.verify_key_b64)

    agg = SalaryAggregator(owner="0xowner", capability=scheme, oracle=oracle)
    agg.add_provider("0xowner", "0xalice")
    agg.open_batch("0xowner")
    agg.submit_salary_data("0xalice", scheme.encrypt(80000), scheme.encrypt(2), scheme.encrypt(5))
    agg.close_batch("0xowner")
    request_id = agg.request_average_decryption("0xalice")
    oracle.fulfil(request_id)
"""

import logging
import threading
import time
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, Tuple

from . import access, lifecycle, protocol
from .access import RoleRegistry
from .config import Settings, get_settings
from .encryption import Ciphertext, EncryptionCapability, HandleScheme
from .errors import ProtocolError
from .events import Event, EventKind, EventLog, get_event_log
from .ledger import AggregationLedger, LedgerSnapshot
from .logging_config import audit_log
from .oracle import DecryptionOracle, LocalDecryptionOracle
from .protocol import DecryptionContext
from .rate_limit import RateLimiter, set_cooldown_seconds
from .state import SystemState, restore_from_events

logger = logging.getLogger(__name__)


def _entry_point(func: Callable) -> Callable:
    """Serialize the call and audit rejections."""
    @wraps(func)
    def wrapper(self: "SalaryAggregator", *args, **kwargs):
        with self._lock:
            try:
                return func(self, *args, **kwargs)
            except ProtocolError as e:
                caller = args[0] if args and isinstance(args[0], str) else None
                audit_log.operation_rejected(func.__name__, caller, e.code.value, e.message)
                raise
    return wrapper


class SalaryAggregator:
    """Owner of the SystemState and the serialized entry points over it."""

    def __init__(
        self,
        owner: str,
        capability: EncryptionCapability,
        oracle: DecryptionOracle,
        cooldown_seconds: int = 60,
        process_id: str = "privsalary-aggregator-001",
        event_log: Optional[EventLog] = None,
        clock: Callable[[], float] = time.monotonic
    ):
        self._lock = threading.RLock()
        self._state = SystemState(
            roles=RoleRegistry(owner),
            rate_limiter=RateLimiter(cooldown_seconds, clock=clock),
            ledger=AggregationLedger(capability),
            events=event_log if event_log is not None else get_event_log("memory"),
            capability=capability,
            oracle=oracle,
            process_id=process_id,
        )
        if len(self._state.events):
            self._restore()

    def _restore(self) -> None:
        summary = restore_from_events(self._state, self._state.events.all())
        self._state.oracle.resume_after(summary.last_request_id)
        logger.info(
            "restored %d events: batch %s, %d published, owner %s",
            summary.events, self._state.batch_id, len(self._state.published), self._state.roles.owner
        )
        if summary.batch_was_open:
            logger.warning("batch %s was open at shutdown; its submissions were not persisted and it is now closed",
                           self._state.batch_id)
        if summary.abandoned_requests:
            logger.warning("abandoning decryption requests %s; their ledger was not persisted",
                           summary.abandoned_requests)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> Tuple["SalaryAggregator", HandleScheme, LocalDecryptionOracle]:
        """
        Build an aggregator wired to the development scheme and local oracle.

        Returns:
            (aggregator, scheme, oracle)
        """
        settings = settings or get_settings()
        scheme = HandleScheme()
        if settings.oracle_key_path:
            oracle = LocalDecryptionOracle.from_key_file(scheme, settings.oracle_key_path)
        else:
            oracle = LocalDecryptionOracle(scheme)
        scheme.trust_oracle_key(oracle.kid, oracle.verify_key_b64)

        event_log = get_event_log(settings.event_log_backend, settings.db_path)
        aggregator = cls(
            owner=settings.owner_address,
            capability=scheme,
            oracle=oracle,
            cooldown_seconds=settings.cooldown_seconds,
            process_id=settings.process_id,
            event_log=event_log,
        )
        return aggregator, scheme, oracle

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    @_entry_point
    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        access.transfer_ownership(self._state, caller, new_owner)

    @_entry_point
    def add_provider(self, caller: str, address: str) -> None:
        access.add_provider(self._state, caller, address)

    @_entry_point
    def remove_provider(self, caller: str, address: str) -> None:
        access.remove_provider(self._state, caller, address)

    @_entry_point
    def pause(self, caller: str) -> None:
        access.pause(self._state, caller)

    @_entry_point
    def unpause(self, caller: str) -> None:
        access.unpause(self._state, caller)

    @_entry_point
    def set_cooldown_seconds(self, caller: str, value: int) -> None:
        set_cooldown_seconds(self._state, caller, value)

    # ------------------------------------------------------------------
    # Batch lifecycle
    # ------------------------------------------------------------------

    @_entry_point
    def open_batch(self, caller: str) -> int:
        return lifecycle.open_batch(self._state, caller)

    @_entry_point
    def close_batch(self, caller: str) -> int:
        return lifecycle.close_batch(self._state, caller)

    @_entry_point
    def submit_salary_data(
        self,
        caller: str,
        salary: Ciphertext,
        company_size: Ciphertext,
        years_experience: Ciphertext
    ) -> None:
        lifecycle.submit_salary_data(self._state, caller, salary, company_size, years_experience)

    # ------------------------------------------------------------------
    # Decryption
    # ------------------------------------------------------------------

    @_entry_point
    def request_average_decryption(self, caller: str) -> int:
        return protocol.request_average_decryption(self._state, caller, self.on_decryption_result)

    @_entry_point
    def on_decryption_result(self, request_id: int, cleartexts: bytes, proof: bytes) -> Tuple[int, ...]:
        return protocol.on_decryption_result(self._state, request_id, cleartexts, proof)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self._state.roles.owner

    @property
    def providers(self) -> List[str]:
        return sorted(self._state.roles.providers)

    def is_provider(self, address: str) -> bool:
        return self._state.roles.is_provider(address)

    @property
    def paused(self) -> bool:
        return self._state.paused

    @property
    def cooldown_seconds(self) -> int:
        return self._state.rate_limiter.cooldown

    @property
    def batch_id(self) -> int:
        return self._state.batch_id

    @property
    def batch_open(self) -> bool:
        return self._state.batch_open

    @property
    def events(self) -> EventLog:
        return self._state.events

    def ledger_snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return self._state.ledger.snapshot()

    def decryption_context(self, request_id: int) -> Optional[DecryptionContext]:
        with self._lock:
            return self._state.contexts.get(request_id)

    def decryption_contexts(self) -> List[DecryptionContext]:
        with self._lock:
            return self._state.contexts.all()

    def published_result(self, batch_id: int) -> Optional[Event]:
        """The decryption-completed record for ``batch_id``, if any."""
        events = self._state.events.query(kind=EventKind.DECRYPTION_COMPLETED, batch_id=batch_id)
        return events[0] if events else None

    def is_available(self) -> bool:
        """Liveness probe: True when not paused."""
        return not self._state.paused

    def status(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "owner": self.owner,
                "providers": self.providers,
                "paused": self.paused,
                "cooldown_seconds": self.cooldown_seconds,
                "batch_id": self.batch_id,
                "batch_open": self.batch_open,
                "pending_requests": [
                    c.request_id for c in self._state.contexts.all() if not c.processed
                ],
            }
