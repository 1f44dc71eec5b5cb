"""
privsalary System State

Everything the core owns, gathered into one aggregate that each operation
handler receives by reference. No handler reads module-level state.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .access import RoleRegistry
from .encryption import EncryptionCapability
from .events import Event, EventKind, EventLog
from .ledger import AggregationLedger
from .oracle import DecryptionOracle
from .protocol import DecryptionContextStore
from .rate_limit import RateLimiter


@dataclass
class SystemState:
    roles: RoleRegistry
    rate_limiter: RateLimiter
    ledger: AggregationLedger
    events: EventLog
    capability: EncryptionCapability
    oracle: DecryptionOracle
    process_id: str
    paused: bool = False
    batch_id: int = 0
    batch_open: bool = False
    contexts: DecryptionContextStore = field(default_factory=DecryptionContextStore)
    # batch id -> request id whose result was published
    published: Dict[int, int] = field(default_factory=dict)


@dataclass
class RestoreSummary:
    """What ``restore_from_events`` recovered from an existing log."""
    events: int = 0
    last_request_id: int = 0
    abandoned_requests: List[int] = field(default_factory=list)
    batch_was_open: bool = False


def restore_from_events(state: SystemState, events: Iterable[Event]) -> RestoreSummary:
    """
    Replay a published event stream into a fresh state.

    Roles, pause flag, cooldown, batch id and published batches come back
    exactly. Ciphertexts are not in the log, so the ledger starts empty:
    a batch that was open at shutdown comes back closed and cannot be
    decrypted, and requests still awaiting a callback are abandoned.
    Nothing is appended while replaying.
    """
    summary = RestoreSummary()
    requested: Dict[int, int] = {}
    for event in events:
        summary.events += 1
        payload = event.payload
        kind = event.kind
        if kind == EventKind.OWNERSHIP_CHANGED:
            state.roles.set_owner(payload["new_owner"])
        elif kind == EventKind.PROVIDER_ADDED:
            state.roles.grant(payload["provider"])
        elif kind == EventKind.PROVIDER_REMOVED:
            state.roles.revoke(payload["provider"])
        elif kind == EventKind.PAUSED:
            state.paused = True
        elif kind == EventKind.UNPAUSED:
            state.paused = False
        elif kind == EventKind.COOLDOWN_CHANGED:
            state.rate_limiter.set_cooldown(payload["cooldown_seconds"])
        elif kind == EventKind.BATCH_OPENED:
            state.batch_id = payload["batch_id"]
            summary.batch_was_open = True
        elif kind == EventKind.BATCH_CLOSED:
            summary.batch_was_open = False
        elif kind == EventKind.DECRYPTION_REQUESTED:
            requested[payload["request_id"]] = payload["batch_id"]
            summary.last_request_id = max(summary.last_request_id, payload["request_id"])
        elif kind == EventKind.DECRYPTION_COMPLETED:
            requested.pop(payload["request_id"], None)
            state.published[payload["batch_id"]] = payload["request_id"]
    summary.abandoned_requests = sorted(
        rid for rid, batch_id in requested.items() if batch_id not in state.published
    )
    state.batch_open = False
    return summary
