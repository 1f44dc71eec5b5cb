"""
privsalary Error Model

Every rejected operation raises a ProtocolError subclass tagged with an
ErrorCode. Callers branch on ``error.code``; the service layer maps codes
to HTTP statuses.

Errors are local and synchronous. The core never retries.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(str, Enum):
    """Tag for every way an operation can be rejected."""
    NOT_OWNER = "NotOwner"
    NOT_PROVIDER = "NotProvider"
    PAUSED = "Paused"
    COOLDOWN_ACTIVE = "CooldownActive"
    BATCH_NOT_OPEN = "BatchNotOpen"
    BATCH_ALREADY_OPEN = "BatchAlreadyOpen"
    BATCH_NOT_CLOSED = "BatchNotClosed"
    INVALID_PARAMETER = "InvalidParameter"
    REPLAY_DETECTED = "ReplayDetected"
    STATE_MISMATCH = "StateMismatch"
    DECRYPTION_FAILED = "DecryptionFailed"
    DECRYPTION_PENDING = "DecryptionPending"
    UNKNOWN_REQUEST = "UnknownRequest"
    ALREADY_PUBLISHED = "AlreadyPublished"


class ProtocolError(Exception):
    """Base class for rejected operations."""

    code: ErrorCode = ErrorCode.INVALID_PARAMETER

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.code.value)
        self.message = message or self.code.value
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class NotOwnerError(ProtocolError):
    """Owner-gated call made by someone other than the owner."""
    code = ErrorCode.NOT_OWNER


class NotProviderError(ProtocolError):
    """Provider-gated call made by a non-provider."""
    code = ErrorCode.NOT_PROVIDER


class PausedError(ProtocolError):
    """Mutating call while the system is paused."""
    code = ErrorCode.PAUSED


class CooldownActiveError(ProtocolError):
    """Rate-limit window for this address and kind has not elapsed."""
    code = ErrorCode.COOLDOWN_ACTIVE

    def __init__(self, message: str = "", retry_after: float = 0.0):
        super().__init__(message, {"retry_after": retry_after})
        self.retry_after = retry_after


class BatchNotOpenError(ProtocolError):
    code = ErrorCode.BATCH_NOT_OPEN


class BatchAlreadyOpenError(ProtocolError):
    code = ErrorCode.BATCH_ALREADY_OPEN


class BatchNotClosedError(ProtocolError):
    code = ErrorCode.BATCH_NOT_CLOSED


class InvalidParameterError(ProtocolError):
    code = ErrorCode.INVALID_PARAMETER


class ReplayDetectedError(ProtocolError):
    """Second completion attempt for a request id."""
    code = ErrorCode.REPLAY_DETECTED


class StateMismatchError(ProtocolError):
    """Aggregate recomputed at callback time does not match the request."""
    code = ErrorCode.STATE_MISMATCH


class DecryptionFailedError(ProtocolError):
    """Oracle proof rejected or cleartexts undecodable."""
    code = ErrorCode.DECRYPTION_FAILED


class DecryptionPendingError(ProtocolError):
    """Batch cannot be reopened while its decryption awaits a callback."""
    code = ErrorCode.DECRYPTION_PENDING


class UnknownRequestError(ProtocolError):
    code = ErrorCode.UNKNOWN_REQUEST


class AlreadyPublishedError(ProtocolError):
    """The batch average has already been decrypted and published."""
    code = ErrorCode.ALREADY_PUBLISHED

