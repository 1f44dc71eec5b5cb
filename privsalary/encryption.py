"""
privsalary Encryption Capability

The core never sees plaintext. It calls an EncryptionCapability for every
operation on encrypted values:

    zero() / one()      trivial encryptions of constants
    add(a, b)           homomorphic addition
    div(a, b)           homomorphic division, truncating toward zero
    is_zero(a)          zero predicate; reveals nothing beyond that bit
    serialize(a)        canonical bytes of a ciphertext
    verify_decryption   checks an oracle proof over a set of cleartexts

HandleScheme is a development implementation in the style of symbolic
FHE runtimes: a ciphertext is a 32-byte handle and the plaintext lives only
inside the scheme. Handles of derived values are a hash of the operation
and its operand handles, so recomputing the same expression yields the same
bytes. Fresh encryptions carry a random nonce.

HandleScheme is NOT encryption. Anyone holding the scheme object can read
values. It exists so the orchestration can be exercised end to end.
"""

import base64
import hashlib
import json
import secrets
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Sequence

from nacl.exceptions import BadSignatureError
from nacl.signing import VerifyKey

from .canonicalization import canonicalize

HANDLE_SIZE = 32
CLEARTEXT_WORD_SIZE = 32


@dataclass(frozen=True)
class Ciphertext:
    """Opaque encrypted value."""
    handle: bytes

    def hex(self) -> str:
        return self.handle.hex()

    @classmethod
    def from_hex(cls, value: str) -> "Ciphertext":
        raw = bytes.fromhex(value[2:] if value.startswith("0x") else value)
        if len(raw) != HANDLE_SIZE:
            raise ValueError(f"ciphertext handle must be {HANDLE_SIZE} bytes")
        return cls(raw)

    def __repr__(self) -> str:
        return f"Ciphertext({self.hex()[:10]}...)"


class EncryptionCapability(ABC):
    """Abstract interface for encrypted arithmetic used by the core."""

    @abstractmethod
    def zero(self) -> Ciphertext:
        pass

    @abstractmethod
    def one(self) -> Ciphertext:
        pass

    @abstractmethod
    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        pass

    @abstractmethod
    def div(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        """Integer division truncating toward zero."""
        pass

    @abstractmethod
    def is_zero(self, a: Ciphertext) -> bool:
        pass

    @abstractmethod
    def serialize(self, a: Ciphertext) -> bytes:
        pass

    @abstractmethod
    def is_valid(self, a: Ciphertext) -> bool:
        """True if ``a`` is a ciphertext this capability can operate on."""
        pass

    @abstractmethod
    def verify_decryption(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        """
        Check that ``proof`` authenticates ``cleartexts`` for ``request_id``.

        May raise on malformed input; callers treat a raise as rejection.
        """
        pass


# =============================================================================
# CLEARTEXT ENCODING
# =============================================================================

def encode_cleartexts(values: Sequence[int]) -> bytes:
    """Encode integers as consecutive 32-byte big-endian two's-complement words."""
    return b"".join(
        int(v).to_bytes(CLEARTEXT_WORD_SIZE, "big", signed=True) for v in values
    )


def decode_cleartexts(data: bytes, count: int) -> List[int]:
    """
    Inverse of encode_cleartexts.

    Raises:
        ValueError: if ``data`` is not exactly ``count`` words
    """
    if len(data) != count * CLEARTEXT_WORD_SIZE:
        raise ValueError(
            f"expected {count * CLEARTEXT_WORD_SIZE} cleartext bytes, got {len(data)}"
        )
    return [
        int.from_bytes(data[i:i + CLEARTEXT_WORD_SIZE], "big", signed=True)
        for i in range(0, len(data), CLEARTEXT_WORD_SIZE)
    ]


def decryption_message(request_id: int, cleartexts: bytes) -> bytes:
    """Bytes an oracle signs to prove a decryption result."""
    return canonicalize({"cleartexts": cleartexts.hex(), "request_id": int(request_id)})


def encode_proof(kid: str, signature: bytes) -> bytes:
    return canonicalize({"kid": kid, "sig_b64": base64.b64encode(signature).decode("ascii")})


def decode_proof(proof: bytes) -> Dict[str, str]:
    data = json.loads(proof.decode("utf-8"))
    if not isinstance(data, dict) or "kid" not in data or "sig_b64" not in data:
        raise ValueError("proof must carry kid and sig_b64")
    return data


def truncating_div(a: int, b: int) -> int:
    """Integer division rounding toward zero."""
    if b == 0:
        raise ZeroDivisionError("division by encrypted zero")
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


# =============================================================================
# DEVELOPMENT SCHEME
# =============================================================================

class HandleScheme(EncryptionCapability):
    """
    Handle-based stand-in for an FHE runtime.

    Usage:
        scheme = HandleScheme()
        scheme.trust_oracle_key("oracle-01", oracle.verify_key_b64)
        ct = scheme.encrypt(85000)
    """

    def __init__(self):
        self._values: Dict[bytes, int] = {}
        self._trusted_keys: Dict[str, VerifyKey] = {}
        self._lock = threading.Lock()

    @staticmethod
    def _derive(op: str, *operands: bytes) -> bytes:
        h = hashlib.sha256(op.encode("utf-8"))
        for operand in operands:
            h.update(operand)
        return h.digest()

    def _put(self, handle: bytes, value: int) -> Ciphertext:
        with self._lock:
            self._values[handle] = value
        return Ciphertext(handle)

    def _value(self, a: Ciphertext) -> int:
        try:
            return self._values[a.handle]
        except KeyError:
            raise ValueError(f"unknown ciphertext {a!r}") from None

    def encrypt(self, value: int) -> Ciphertext:
        """Fresh encryption with a random handle (client side)."""
        handle = self._derive("input", secrets.token_bytes(HANDLE_SIZE))
        return self._put(handle, int(value))

    def trivial(self, value: int) -> Ciphertext:
        return self._put(self._derive("trivial", encode_cleartexts([value])), int(value))

    def zero(self) -> Ciphertext:
        return self.trivial(0)

    def one(self) -> Ciphertext:
        return self.trivial(1)

    def add(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        value = self._value(a) + self._value(b)
        return self._put(self._derive("add", a.handle, b.handle), value)

    def div(self, a: Ciphertext, b: Ciphertext) -> Ciphertext:
        value = truncating_div(self._value(a), self._value(b))
        return self._put(self._derive("div", a.handle, b.handle), value)

    def is_zero(self, a: Ciphertext) -> bool:
        return self._value(a) == 0

    def serialize(self, a: Ciphertext) -> bytes:
        return a.handle

    def is_valid(self, a: Ciphertext) -> bool:
        return isinstance(a, Ciphertext) and a.handle in self._values

    def reveal(self, a: Ciphertext) -> int:
        """Plaintext of ``a``. Only a decryption oracle should call this."""
        return self._value(a)

    # ---------------------------------------------------------------------
    # Oracle trust
    # ---------------------------------------------------------------------

    def trust_oracle_key(self, kid: str, verify_key_b64: str) -> None:
        self._trusted_keys[kid] = VerifyKey(base64.b64decode(verify_key_b64))

    def distrust_oracle_key(self, kid: str) -> None:
        self._trusted_keys.pop(kid, None)

    def verify_decryption(self, request_id: int, cleartexts: bytes, proof: bytes) -> bool:
        data = decode_proof(proof)
        key = self._trusted_keys.get(data["kid"])
        if key is None:
            return False
        try:
            key.verify(decryption_message(request_id, cleartexts), base64.b64decode(data["sig_b64"]))
            return True
        except BadSignatureError:
            return False
