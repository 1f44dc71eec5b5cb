"""
privsalary Decryption Oracle

The oracle turns a set of ciphertexts into cleartexts plus a proof, at some
later time, by invoking a callback:

    request_id = oracle.request(ciphertexts, callback)
    ...
    callback(request_id, cleartexts, proof)

LocalDecryptionOracle is an in-process oracle for development and tests.
Delivery is explicit (``fulfil``) so callers control the delay between
request and callback, including never delivering at all.
"""

import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

from nacl.signing import SigningKey

from .encryption import (
    Ciphertext,
    HandleScheme,
    decryption_message,
    encode_cleartexts,
    encode_proof,
)
from .util import b64d, b64e

logger = logging.getLogger(__name__)

DecryptionCallback = Callable[[int, bytes, bytes], object]


class DecryptionOracle(ABC):
    """Abstract asynchronous decryption service."""

    @abstractmethod
    def request(self, ciphertexts: Sequence[Ciphertext], callback: DecryptionCallback) -> int:
        """
        Queue ciphertexts for decryption.

        Returns:
            Opaque request identifier, unique per oracle
        """
        pass

    def resume_after(self, request_id: int) -> None:
        """
        Never issue ids at or below ``request_id``.

        Called when an aggregator restarts on an existing event log. Oracles
        whose ids are globally unique can ignore it.
        """


@dataclass
class PendingRequest:
    request_id: int
    ciphertexts: List[Ciphertext]
    callback: DecryptionCallback


class LocalDecryptionOracle(DecryptionOracle):
    """
    Oracle that decrypts through a HandleScheme and signs with Ed25519.

    Usage:
        oracle = LocalDecryptionOracle(scheme)
        scheme.trust_oracle_key(oracle.kid, oracle.verify_key_b64)
    """

    def __init__(
        self,
        scheme: HandleScheme,
        signing_key: Optional[SigningKey] = None,
        kid: str = "oracle-01",
        first_request_id: int = 1
    ):
        self._scheme = scheme
        self._sk = signing_key or SigningKey.generate()
        self._kid = kid
        self._next_id = first_request_id
        self._pending: Dict[int, PendingRequest] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_key_file(cls, scheme: HandleScheme, path: str) -> "LocalDecryptionOracle":
        """Load ``{"kid": ..., "private_key_b64": ...}`` from ``path``."""
        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        return cls(scheme, SigningKey(b64d(raw["private_key_b64"])), kid=raw["kid"])

    @property
    def kid(self) -> str:
        return self._kid

    @property
    def verify_key_b64(self) -> str:
        return b64e(bytes(self._sk.verify_key))

    def request(self, ciphertexts: Sequence[Ciphertext], callback: DecryptionCallback) -> int:
        with self._lock:
            request_id = self._next_id
            self._next_id += 1
            self._pending[request_id] = PendingRequest(request_id, list(ciphertexts), callback)
        logger.debug("queued decryption request %s (%d ciphertexts)", request_id, len(ciphertexts))
        return request_id

    def resume_after(self, request_id: int) -> None:
        with self._lock:
            self._next_id = max(self._next_id, request_id + 1)

    def pending_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._pending)

    def sign_result(self, request_id: int, cleartexts: bytes) -> bytes:
        """Proof over ``cleartexts`` for ``request_id``."""
        sig = self._sk.sign(decryption_message(request_id, cleartexts)).signature
        return encode_proof(self._kid, sig)

    def decrypt(self, request_id: int) -> bytes:
        """Cleartexts for a pending request, without delivering them."""
        with self._lock:
            pending = self._pending[request_id]
        return encode_cleartexts([self._scheme.reveal(c) for c in pending.ciphertexts])

    def fulfil(self, request_id: int):
        """
        Decrypt, sign and deliver one pending request.

        The request leaves the pending set before the callback runs, so a
        callback that raises is not retried. The callback's exception
        propagates to the caller.
        """
        cleartexts = self.decrypt(request_id)
        proof = self.sign_result(request_id, cleartexts)
        with self._lock:
            pending = self._pending.pop(request_id)
        return pending.callback(request_id, cleartexts, proof)

    def fulfil_all(self) -> List[int]:
        """Deliver every pending request in id order. Returns delivered ids."""
        delivered = []
        for request_id in self.pending_ids():
            self.fulfil(request_id)
            delivered.append(request_id)
        return delivered


def write_oracle_key(path: str, kid: str = "oracle-01") -> str:
    """Generate an oracle signing key file. Returns the base64 verify key."""
    sk = SigningKey.generate()
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump({"kid": kid, "private_key_b64": b64e(bytes(sk))}, f, indent=2)
    return b64e(bytes(sk.verify_key))
