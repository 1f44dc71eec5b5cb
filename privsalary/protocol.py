"""
privsalary Decryption Oracle Protocol

Round trip between the core and the decryption oracle:

    1. request_average_decryption
         zero test on the encrypted count
         averages = sum / count for each field (truncating)
         state_hash = binding_hash(serialize(averages), process_id)
         request_id = oracle.request(averages, callback)
         contexts[request_id] = {batch_id, state_hash, processed=False}

    2. on_decryption_result(request_id, cleartexts, proof)
         reject replays of a processed context
         recompute averages from the LIVE ledger and compare hashes
         verify the oracle proof through the encryption capability
         decode, mark processed, publish

The expected hash is always re-derived from live state. Nothing carried in
the callback payload is trusted to describe the aggregate.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Tuple

from .access import require_not_paused
from .encryption import decode_cleartexts
from .errors import (
    AlreadyPublishedError,
    BatchNotClosedError,
    DecryptionFailedError,
    InvalidParameterError,
    ReplayDetectedError,
    StateMismatchError,
    UnknownRequestError,
)
from .events import EventKind
from .hashing import binding_hash, hashes_equal
from .ledger import FIELDS
from .logging_config import audit_log
from .oracle import DecryptionCallback
from .rate_limit import OperationKind

if TYPE_CHECKING:
    from .state import SystemState

logger = logging.getLogger(__name__)


@dataclass
class DecryptionContext:
    """Pending or completed decryption. Never deleted."""
    request_id: int
    batch_id: int
    state_hash: str
    processed: bool = False
    requested_by: str = ""
    requested_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    averages: Optional[Tuple[int, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "request_id": self.request_id,
            "batch_id": self.batch_id,
            "state_hash": self.state_hash,
            "processed": self.processed,
            "requested_by": self.requested_by,
            "requested_at": self.requested_at,
            "completed_at": self.completed_at,
            "averages": dict(zip(FIELDS, self.averages)) if self.averages else None,
        }


class DecryptionContextStore:
    """
    Contexts in issue order (arena) with a request-id index.
    """

    def __init__(self):
        self._arena: List[DecryptionContext] = []
        self._index: Dict[int, int] = {}

    def add(self, context: DecryptionContext) -> None:
        if context.request_id in self._index:
            raise ValueError(f"duplicate request id {context.request_id}")
        self._index[context.request_id] = len(self._arena)
        self._arena.append(context)

    def get(self, request_id: int) -> Optional[DecryptionContext]:
        slot = self._index.get(request_id)
        return self._arena[slot] if slot is not None else None

    def pending_for_batch(self, batch_id: int) -> List[DecryptionContext]:
        return [c for c in self._arena if c.batch_id == batch_id and not c.processed]

    def all(self) -> List[DecryptionContext]:
        return list(self._arena)

    def __len__(self) -> int:
        return len(self._arena)

    def __contains__(self, request_id: int) -> bool:
        return request_id in self._index


def _current_binding(state: "SystemState") -> str:
    averages = state.ledger.averages()
    return binding_hash([state.capability.serialize(c) for c in averages], state.process_id)


def request_average_decryption(state: "SystemState", caller: str, callback: DecryptionCallback) -> int:
    """
    Ask the oracle to decrypt the averages of the current (closed) batch.

    Returns:
        The oracle's request id
    """
    state.roles.require_provider(caller)
    require_not_paused(state)
    if state.batch_open:
        raise BatchNotClosedError(f"batch {state.batch_id} is still open")
    if state.batch_id in state.published:
        raise AlreadyPublishedError(
            f"batch {state.batch_id} average already published",
            {"request_id": state.published[state.batch_id]}
        )

    state.rate_limiter.check_and_record(caller, OperationKind.DECRYPTION_REQUEST)

    if not state.ledger.has_submissions():
        raise InvalidParameterError(f"batch {state.batch_id} has no submissions")

    averages = state.ledger.averages()
    state_hash = binding_hash([state.capability.serialize(c) for c in averages], state.process_id)
    request_id = state.oracle.request(averages, callback)

    audit_log.decryption_requested(request_id, state.batch_id, state_hash)
    state.events.append(EventKind.DECRYPTION_REQUESTED, {
        "request_id": request_id,
        "batch_id": state.batch_id,
    })
    state.contexts.add(DecryptionContext(
        request_id=request_id,
        batch_id=state.batch_id,
        state_hash=state_hash,
        requested_by=caller,
    ))
    return request_id


def on_decryption_result(
    state: "SystemState",
    request_id: int,
    cleartexts: bytes,
    proof: bytes
) -> Tuple[int, ...]:
    """
    Validate and publish an oracle result.

    Not gated on pause: the oracle does not retry, so rejecting a callback
    while paused would lose the result.

    Returns:
        (avg_salary, avg_company_size, avg_years_experience)
    """
    context = state.contexts.get(request_id)
    if context is None:
        raise UnknownRequestError(f"no decryption request {request_id}")

    if context.processed:
        audit_log.security_event("DECRYPTION_REPLAY", "high", oracle_request_id=request_id)
        raise ReplayDetectedError(f"request {request_id} already processed")

    if context.batch_id in state.published:
        audit_log.security_event("DUPLICATE_PUBLICATION", "high",
                                 oracle_request_id=request_id, batch_id=context.batch_id)
        raise AlreadyPublishedError(
            f"batch {context.batch_id} average already published",
            {"request_id": state.published[context.batch_id]}
        )

    if not hashes_equal(_current_binding(state), context.state_hash):
        audit_log.security_event("DECRYPTION_STATE_MISMATCH", "high", oracle_request_id=request_id)
        raise StateMismatchError(f"aggregate changed since request {request_id}")

    try:
        verified = state.capability.verify_decryption(request_id, cleartexts, proof)
    except Exception as e:
        logger.warning("proof verification raised for request %s: %s", request_id, e)
        verified = False
    if not verified:
        audit_log.security_event("DECRYPTION_PROOF_REJECTED", "high", oracle_request_id=request_id)
        raise DecryptionFailedError(f"proof rejected for request {request_id}")

    try:
        averages = tuple(decode_cleartexts(cleartexts, len(FIELDS)))
    except ValueError as e:
        raise DecryptionFailedError(str(e)) from e

    audit_log.decryption_completed(request_id, context.batch_id)
    state.events.append(EventKind.DECRYPTION_COMPLETED, {
        "request_id": request_id,
        "batch_id": context.batch_id,
        "avg_salary": averages[0],
        "avg_company_size": averages[1],
        "avg_years_experience": averages[2],
    })
    context.processed = True
    context.completed_at = time.time()
    context.averages = averages
    state.published[context.batch_id] = request_id
    return averages
