"""
privsalary: Confidential Salary Aggregation

Providers submit encrypted (salary, company size, years of experience)
triples into a batch. When the owner closes the batch, a provider asks a
decryption oracle for the batch averages. Only those averages ever become
plaintext, and only once per batch.

Core guarantees:
- At most one batch is open; ids only grow
- Per-address cooldowns on submissions and decryption requests
- Each decryption request is bound to a hash of the exact aggregate it asked
  about; callbacks are checked against the live ledger, their proof is
  verified, and a request id completes at most once
- Every transition is published to a hash-chained event log

Usage:
    from privsalary import SalaryAggregator, HandleScheme, LocalDecryptionOracle

    scheme = HandleScheme()
    oracle = LocalDecryptionOracle(scheme)
    scheme.trust_oracle_key(oracle.kid, oracle.verify_key_b64)

    agg = SalaryAggregator(owner="0xowner", capability=scheme, oracle=oracle)
    agg.open_batch("0xowner")
    agg.submit_salary_data("0xowner", scheme.encrypt(80000), scheme.encrypt(2), scheme.encrypt(5))
    agg.close_batch("0xowner")
    oracle.fulfil(agg.request_average_decryption("0xowner"))

    completed = agg.published_result(agg.batch_id)
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

from .aggregator import SalaryAggregator
from .access import RoleRegistry
from .config import Settings, get_settings, load_settings, validate_settings
from .encryption import (
    Ciphertext,
    EncryptionCapability,
    HandleScheme,
    decode_cleartexts,
    encode_cleartexts,
)
from .errors import (
    ErrorCode,
    ProtocolError,
    NotOwnerError,
    NotProviderError,
    PausedError,
    CooldownActiveError,
    BatchNotOpenError,
    BatchAlreadyOpenError,
    BatchNotClosedError,
    InvalidParameterError,
    ReplayDetectedError,
    StateMismatchError,
    DecryptionFailedError,
    DecryptionPendingError,
    UnknownRequestError,
    AlreadyPublishedError,
)
from .events import (
    Event,
    EventKind,
    EventLog,
    InMemoryEventLog,
    SqliteEventLog,
    get_event_log,
    verify_chain,
)
from .hashing import binding_hash, sha256_hash
from .ledger import FIELDS, AggregationLedger, LedgerSnapshot
from .oracle import DecryptionOracle, LocalDecryptionOracle
from .protocol import DecryptionContext, DecryptionContextStore
from .rate_limit import OperationKind, RateLimiter
from .state import SystemState

__all__ = [
    "__version__",
    "SalaryAggregator",
    "RoleRegistry",
    "Settings",
    "get_settings",
    "load_settings",
    "validate_settings",
    "Ciphertext",
    "EncryptionCapability",
    "HandleScheme",
    "decode_cleartexts",
    "encode_cleartexts",
    "ErrorCode",
    "ProtocolError",
    "NotOwnerError",
    "NotProviderError",
    "PausedError",
    "CooldownActiveError",
    "BatchNotOpenError",
    "BatchAlreadyOpenError",
    "BatchNotClosedError",
    "InvalidParameterError",
    "ReplayDetectedError",
    "StateMismatchError",
    "DecryptionFailedError",
    "DecryptionPendingError",
    "UnknownRequestError",
    "AlreadyPublishedError",
    "Event",
    "EventKind",
    "EventLog",
    "InMemoryEventLog",
    "SqliteEventLog",
    "get_event_log",
    "verify_chain",
    "binding_hash",
    "sha256_hash",
    "FIELDS",
    "AggregationLedger",
    "LedgerSnapshot",
    "DecryptionOracle",
    "LocalDecryptionOracle",
    "DecryptionContext",
    "DecryptionContextStore",
    "OperationKind",
    "RateLimiter",
    "SystemState",
]
