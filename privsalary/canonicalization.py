"""
privsalary Canonical JSON Encoding

Semantically identical structures produce identical bytes. Used for binding
hashes, oracle proofs and event log payloads.
"""

import json
from typing import Any, Dict, List, Union


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Rules:
    - Object keys sorted lexicographically (Unicode code point order)
    - No whitespace between tokens
    - UTF-8 encoding, no BOM
    - Arrays preserve order
    - bytes are not accepted; hex-encode them first

    Returns:
        UTF-8 encoded bytes of canonical JSON
    """
    canonical = _canonicalize_value(obj)
    return json.dumps(canonical, separators=(',', ':'), ensure_ascii=False).encode('utf-8')


def _canonicalize_value(value: Any) -> Any:
    if value is None:
        return None
    elif isinstance(value, bool):
        return value
    elif isinstance(value, (int, float)):
        return value
    elif isinstance(value, str):
        return value
    elif isinstance(value, dict):
        return _canonicalize_object(value)
    elif isinstance(value, (list, tuple)):
        return _canonicalize_array(value)
    else:
        raise ValueError(f"Cannot canonicalize type: {type(value)}")


def _canonicalize_object(obj: Dict[str, Any]) -> Dict[str, Any]:
    return {k: _canonicalize_value(obj[k]) for k in sorted(obj.keys())}


def _canonicalize_array(arr: Union[List, tuple]) -> List:
    return [_canonicalize_value(item) for item in arr]
