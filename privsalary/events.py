"""
privsalary Event Log

Append-only record of every lifecycle transition and outcome. Entries are
hash-chained: each entry_hash commits to the previous entry and to the
canonical payload, so an exported log can be checked offline.

Backends:
    InMemoryEventLog  - development and tests
    SqliteEventLog    - persistent, single file
"""

import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .hashing import chain_entry_hash, payload_hash
from .logging_config import audit_log


class EventKind(str, Enum):
    OWNERSHIP_CHANGED = "OWNERSHIP_CHANGED"
    PROVIDER_ADDED = "PROVIDER_ADDED"
    PROVIDER_REMOVED = "PROVIDER_REMOVED"
    PAUSED = "PAUSED"
    UNPAUSED = "UNPAUSED"
    COOLDOWN_CHANGED = "COOLDOWN_CHANGED"
    BATCH_OPENED = "BATCH_OPENED"
    BATCH_CLOSED = "BATCH_CLOSED"
    SUBMISSION_ACCEPTED = "SUBMISSION_ACCEPTED"
    DECRYPTION_REQUESTED = "DECRYPTION_REQUESTED"
    DECRYPTION_COMPLETED = "DECRYPTION_COMPLETED"


@dataclass(frozen=True)
class Event:
    """One published record."""
    seq: int
    kind: EventKind
    payload: Dict[str, Any]
    timestamp: float
    payload_hash: str
    prev_entry_hash: Optional[str]
    entry_hash: str

    @property
    def batch_id(self) -> Optional[int]:
        return self.payload.get("batch_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "payload": self.payload,
            "timestamp": self.timestamp,
            "payload_hash": self.payload_hash,
            "prev_entry_hash": self.prev_entry_hash,
            "entry_hash": self.entry_hash,
        }


def _hashed_body(kind: EventKind, payload: Dict[str, Any]) -> Dict[str, Any]:
    return {"kind": kind.value, "payload": payload}


class EventLog(ABC):
    """
    Abstract append-only event log.

    ``append`` builds the chained entry; backends only store and fetch.
    """

    def __init__(self, clock=time.time):
        self._clock = clock
        self._lock = threading.Lock()

    def append(self, kind: EventKind, payload: Dict[str, Any]) -> Event:
        with self._lock:
            prev = self.latest_entry_hash()
            digest = payload_hash(_hashed_body(kind, payload))
            event = Event(
                seq=self._next_seq(),
                kind=kind,
                payload=dict(payload),
                timestamp=self._clock(),
                payload_hash=digest,
                prev_entry_hash=prev,
                entry_hash=chain_entry_hash(prev, digest),
            )
            self._store(event)
        audit_log.lifecycle_event(kind.value, event.seq, event.payload)
        return event

    @abstractmethod
    def _store(self, event: Event) -> None:
        pass

    @abstractmethod
    def _next_seq(self) -> int:
        pass

    @abstractmethod
    def latest_entry_hash(self) -> Optional[str]:
        pass

    @abstractmethod
    def all(self) -> List[Event]:
        pass

    def query(
        self,
        kind: Optional[EventKind] = None,
        batch_id: Optional[int] = None,
        since_seq: int = 0
    ) -> List[Event]:
        """Query events, oldest first."""
        events = [e for e in self.all() if e.seq > since_seq]
        if kind:
            events = [e for e in events if e.kind == kind]
        if batch_id is not None:
            events = [e for e in events if e.batch_id == batch_id]
        return events

    def export(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.all()]

    def __len__(self) -> int:
        return len(self.all())


class InMemoryEventLog(EventLog):
    """
    In-memory event log for development/testing.

    Not persistent across restarts.
    """

    def __init__(self, clock=time.time):
        super().__init__(clock)
        self._events: List[Event] = []

    def _store(self, event: Event) -> None:
        self._events.append(event)

    def _next_seq(self) -> int:
        return len(self._events) + 1

    def latest_entry_hash(self) -> Optional[str]:
        return self._events[-1].entry_hash if self._events else None

    def all(self) -> List[Event]:
        return list(self._events)


class SqliteEventLog(EventLog):
    """
    SQLite-backed hash-chained event log.

    Schema:
        event_log(seq PK, kind, batch_id, payload_json, timestamp,
                  payload_hash, prev_entry_hash, entry_hash)
    """

    def __init__(self, db_path: str, clock=time.time):
        super().__init__(clock)
        self._db_path = Path(db_path)
        if str(db_path) != ":memory:":
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        if str(db_path) != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._init_schema()

    @contextmanager
    def _transaction(self):
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS event_log (
                seq INTEGER PRIMARY KEY,
                kind TEXT NOT NULL,
                batch_id INTEGER,
                payload_json TEXT NOT NULL,
                timestamp REAL NOT NULL,
                payload_hash TEXT NOT NULL,
                prev_entry_hash TEXT,
                entry_hash TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_event_log_kind
            ON event_log(kind);""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_event_log_batch
            ON event_log(batch_id);""")

    def _store(self, event: Event) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT INTO event_log(seq, kind, batch_id, payload_json, timestamp, "
                "payload_hash, prev_entry_hash, entry_hash) VALUES(?,?,?,?,?,?,?,?)",
                (event.seq, event.kind.value, event.batch_id,
                 json.dumps(event.payload, sort_keys=True), event.timestamp,
                 event.payload_hash, event.prev_entry_hash, event.entry_hash)
            )

    def _next_seq(self) -> int:
        cur = self._conn.execute("SELECT COALESCE(MAX(seq), 0) AS seq FROM event_log")
        return cur.fetchone()["seq"] + 1

    def latest_entry_hash(self) -> Optional[str]:
        cur = self._conn.execute("SELECT entry_hash FROM event_log ORDER BY seq DESC LIMIT 1")
        row = cur.fetchone()
        return row["entry_hash"] if row else None

    def all(self) -> List[Event]:
        cur = self._conn.execute(
            "SELECT seq, kind, payload_json, timestamp, payload_hash, prev_entry_hash, "
            "entry_hash FROM event_log ORDER BY seq ASC"
        )
        return [self._row_to_event(row) for row in cur.fetchall()]

    def query(
        self,
        kind: Optional[EventKind] = None,
        batch_id: Optional[int] = None,
        since_seq: int = 0
    ) -> List[Event]:
        sql = ("SELECT seq, kind, payload_json, timestamp, payload_hash, prev_entry_hash, "
               "entry_hash FROM event_log WHERE seq > ?")
        params: List[Any] = [since_seq]
        if kind:
            sql += " AND kind = ?"
            params.append(kind.value)
        if batch_id is not None:
            sql += " AND batch_id = ?"
            params.append(batch_id)
        cur = self._conn.execute(sql + " ORDER BY seq ASC", params)
        return [self._row_to_event(row) for row in cur.fetchall()]

    @staticmethod
    def _row_to_event(row: sqlite3.Row) -> Event:
        return Event(
            seq=row["seq"],
            kind=EventKind(row["kind"]),
            payload=json.loads(row["payload_json"]),
            timestamp=row["timestamp"],
            payload_hash=row["payload_hash"],
            prev_entry_hash=row["prev_entry_hash"],
            entry_hash=row["entry_hash"],
        )

    def close(self) -> None:
        self._conn.close()


def verify_chain(entries: Iterable[Dict[str, Any]]) -> Optional[int]:
    """
    Verify an exported log.

    Returns:
        None if the chain is intact, otherwise the seq of the first bad entry
    """
    prev = None
    for entry in entries:
        digest = payload_hash({"kind": entry["kind"], "payload": entry["payload"]})
        if entry["payload_hash"] != digest:
            return entry["seq"]
        if entry.get("prev_entry_hash") != prev:
            return entry["seq"]
        if entry["entry_hash"] != chain_entry_hash(prev, digest):
            return entry["seq"]
        prev = entry["entry_hash"]
    return None


def get_event_log(backend: str = "memory", db_path: Optional[str] = None) -> EventLog:
    if backend == "sqlite_hash_chain":
        if not db_path:
            raise ValueError("db_path required for sqlite_hash_chain event log")
        return SqliteEventLog(db_path)
    if backend != "memory":
        raise ValueError(f"Unknown event log backend: {backend}")
    return InMemoryEventLog()
