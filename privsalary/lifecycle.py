"""
privsalary Batch Lifecycle

Two states, Closed (initial) and Open. Transitions are explicit calls;
nothing auto-transitions. Pause is a guard checked by every mutating
handler, not a state.

    Closed --open_batch--> Open --close_batch--> Closed
             (id += 1, ledger reset)   (ledger kept for decryption)

Each handler checks, in order: role, pause, lifecycle precondition, rate
limit, parameters. Only the rate limit leaves a trace when a later check
fails. The event is appended before state changes, so a failed append
leaves state as it was.
"""

import logging
from typing import TYPE_CHECKING

from .access import require_not_paused
from .encryption import Ciphertext
from .errors import (
    BatchAlreadyOpenError,
    BatchNotOpenError,
    DecryptionPendingError,
    InvalidParameterError,
)
from .events import EventKind
from .ledger import FIELDS
from .rate_limit import OperationKind

if TYPE_CHECKING:
    from .state import SystemState

logger = logging.getLogger(__name__)


def open_batch(state: "SystemState", caller: str) -> int:
    """
    Open a new batch.

    Returns:
        The new batch id

    Raises:
        BatchAlreadyOpenError: a batch is already open
        DecryptionPendingError: the current batch is unpublished and has a
            decryption awaiting its callback
    """
    state.roles.require_owner(caller)
    require_not_paused(state)
    if state.batch_open:
        raise BatchAlreadyOpenError(f"batch {state.batch_id} is already open")
    pending = state.contexts.pending_for_batch(state.batch_id)
    if pending and state.batch_id not in state.published:
        raise DecryptionPendingError(
            f"batch {state.batch_id} has pending decryption requests",
            {"request_ids": [c.request_id for c in pending]}
        )

    new_id = state.batch_id + 1
    state.events.append(EventKind.BATCH_OPENED, {"batch_id": new_id})
    state.batch_id = new_id
    state.ledger.reset_for_new_batch()
    state.batch_open = True
    return new_id


def close_batch(state: "SystemState", caller: str) -> int:
    state.roles.require_owner(caller)
    require_not_paused(state)
    if not state.batch_open:
        raise BatchNotOpenError("no batch is open")

    state.events.append(EventKind.BATCH_CLOSED, {"batch_id": state.batch_id})
    state.batch_open = False
    return state.batch_id


def submit_salary_data(
    state: "SystemState",
    caller: str,
    salary: Ciphertext,
    company_size: Ciphertext,
    years_experience: Ciphertext
) -> None:
    """
    Fold one provider's encrypted figures into the open batch.

    The cooldown is recorded before the ciphertexts are validated, so a
    submission with bad ciphertexts still costs a cooldown window.
    """
    state.roles.require_provider(caller)
    require_not_paused(state)
    if not state.batch_open:
        raise BatchNotOpenError("no batch is open")

    state.rate_limiter.check_and_record(caller, OperationKind.SUBMISSION)

    values = (salary, company_size, years_experience)
    for name, value in zip(FIELDS, values):
        if not state.capability.is_valid(value):
            raise InvalidParameterError(f"{name} is not a valid ciphertext")

    staged = state.ledger.stage(salary, company_size, years_experience)
    state.events.append(EventKind.SUBMISSION_ACCEPTED, {
        "provider": caller,
        "batch_id": state.batch_id,
    })
    state.ledger.commit(staged)
