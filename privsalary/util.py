"""
Utility functions for privsalary.

Encoding and time helpers shared by the oracle, service and CLI.
"""

import base64
from datetime import datetime, timezone


def b64e(b: bytes) -> str:
    """Base64 encode bytes to string."""
    return base64.b64encode(b).decode('ascii')


def b64d(s: str) -> bytes:
    """Base64 decode string to bytes."""
    return base64.b64decode(s.encode('ascii'))


def utc_rfc3339(ts_epoch: float) -> str:
    """Convert Unix timestamp to RFC3339 UTC string."""
    return datetime.fromtimestamp(ts_epoch, tz=timezone.utc).strftime('%Y-%m-%dT%H:%M:%SZ')


class ManualClock:
    """Clock that only moves when told to. For demos and tests."""

    def __init__(self, start: float = 1000.0):
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> float:
        self._now += seconds
        return self._now
