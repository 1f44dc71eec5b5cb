"""
privsalary Hashing

All hashes use SHA-256 with lowercase hexadecimal output and a ``sha256:``
prefix, except event chain hashes which are bare hex to keep the chain
verifiable with nothing but hashlib.
"""

import hashlib
import hmac
from typing import Optional, Sequence, Union

from .canonicalization import canonicalize


def sha256_hash(data: Union[bytes, str]) -> str:
    """
    Compute SHA-256 hash.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    digest = hashlib.sha256(data).hexdigest().lower()
    return f"sha256:{digest}"


def sha256_hex(data: Union[bytes, str]) -> str:
    if isinstance(data, str):
        data = data.encode('utf-8')
    return hashlib.sha256(data).hexdigest()


def binding_hash(serialized_ciphertexts: Sequence[bytes], process_id: str) -> str:
    """
    Bind an ordered ciphertext sequence to the process that requested it.

    binding_hash = SHA-256(CJE({"ciphertexts": [hex...], "process_id": id}))

    The order of ``serialized_ciphertexts`` is significant.
    """
    body = {
        "ciphertexts": [c.hex() for c in serialized_ciphertexts],
        "process_id": process_id,
    }
    return sha256_hash(canonicalize(body))


def payload_hash(payload: dict) -> str:
    """Hash of an event payload."""
    return sha256_hex(canonicalize(payload))


def chain_entry_hash(prev_entry_hash: Optional[str], payload_digest: str) -> str:
    """
    Link an event into the log.

    entry_hash = SHA-256(prev_entry_hash || payload_hash), with an empty
    string standing in for the first entry's predecessor.
    """
    data = (prev_entry_hash or "").encode("utf-8") + payload_digest.encode("utf-8")
    return sha256_hex(data)


def hashes_equal(a: str, b: str) -> bool:
    """Constant-time comparison of two hash strings."""
    return hmac.compare_digest(a.encode('utf-8'), b.encode('utf-8'))
