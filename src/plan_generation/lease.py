"""
Generation Lease.

A durable, advisory single-flight lock around plan generation. The record
is a millisecond epoch timestamp stored under one well-known key; a record
older than the staleness threshold counts as released, so a crashed client
can never block generation for good.
"""

import uuid
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Generator, Iterator, Optional

from .errors import AlreadyGeneratingError

logger = logging.getLogger(__name__)

MUTEX_KEY = "fitness_plan_generating"
HOLDER_SUFFIX = ":holder"
STALE_AFTER = timedelta(minutes=10)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


@dataclass(frozen=True)
class GenerationMutexRecord:
    """The persisted "generation in progress" marker."""

    started_at: datetime
    holder: Optional[str] = None
    is_generating: bool = True

    def age(self, now: datetime) -> timedelta:
        return now - self.started_at


@dataclass(frozen=True)
class Lease:
    """A held claim on the generation slot."""

    holder: str
    started_at: datetime
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


class LeaseStore(ABC):
    """Minimal durable key-value store backing the lease."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class InMemoryLeaseStore(LeaseStore):
    """Process-local store, used in tests and single-process setups."""

    def __init__(self):
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class SQLiteLeaseStore(LeaseStore):
    """
    SQLite-backed store that survives restarts.

    Uses a short-lived connection per operation so the store can be shared
    across threads.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path
        with self._conn() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS lease_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    @contextmanager
    def _conn(self) -> Generator[sqlite3.Connection, None, None]:
        yield from self._connect()

    def _connect(self) -> Generator[sqlite3.Connection, None, None]:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def get(self, key: str) -> Optional[str]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT value FROM lease_store WHERE key = ?", (key,)
            ).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        with self._conn() as conn:
            conn.execute(
                """
                INSERT INTO lease_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, utc_now().isoformat()),
            )

    def delete(self, key: str) -> None:
        with self._conn() as conn:
            conn.execute("DELETE FROM lease_store WHERE key = ?", (key,))


class GenerationMutex:
    """
    Single-flight guard for plan generation in one client context.

    At most one non-stale record exists per (store, key). The guard is
    advisory: two processes sharing a store can still both see "free"
    before either writes.
    """

    def __init__(
        self,
        store: LeaseStore,
        key: str = MUTEX_KEY,
        ttl: timedelta = STALE_AFTER,
        holder: Optional[str] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the mutex.

        Args:
            store: Durable key-value store holding the record
            key: Well-known record key
            ttl: Age after which a record counts as released
            holder: Identity written alongside the record
            clock: Returns the current timezone-aware UTC time
        """
        self.store = store
        self.key = key
        self.ttl = ttl
        self.holder = holder or f"client-{uuid.uuid4().hex[:8]}"
        self._clock = clock or utc_now
        self._lock = threading.Lock()

    def now(self) -> datetime:
        return self._clock()

    def is_stale(
        self, record: GenerationMutexRecord, now: Optional[datetime] = None
    ) -> bool:
        """True once the record is older than the staleness threshold."""
        return record.age(now or self.now()) > self.ttl

    def read(self) -> Optional[GenerationMutexRecord]:
        """Read the raw record, stale or not. Malformed records are cleared."""
        raw = self.store.get(self.key)
        if raw is None:
            return None
        try:
            started_at = from_epoch_ms(int(raw))
        except (ValueError, OverflowError, OSError):
            logger.warning(f"[LEASE] Clearing malformed record {raw!r}")
            self.release()
            return None
        return GenerationMutexRecord(
            started_at=started_at,
            holder=self.store.get(self.key + HOLDER_SUFFIX),
        )

    def current(self) -> Optional[GenerationMutexRecord]:
        """The record if it is still live."""
        record = self.read()
        if record is None or self.is_stale(record):
            return None
        return record

    def is_generating(self) -> bool:
        return self.current() is not None

    def _write(self, now: datetime) -> Lease:
        self.store.set(self.key, str(to_epoch_ms(now)))
        self.store.set(self.key + HOLDER_SUFFIX, self.holder)
        return Lease(holder=self.holder, started_at=now, expires_at=now + self.ttl)

    def _claim(self) -> Optional[Lease]:
        with self._lock:
            now = self.now()
            record = self.read()
            if record is not None and not self.is_stale(record, now):
                logger.info(
                    f"[LEASE] Refused: held by {record.holder} since "
                    f"{record.started_at.isoformat()}"
                )
                return None
            if record is not None:
                minutes = record.age(now).total_seconds() / 60
                logger.info(f"[LEASE] Overwriting stale record ({minutes:.1f} min old)")
            lease = self._write(now)
            logger.info(f"[LEASE] Acquired by {self.holder}")
            return lease

    def try_acquire(self) -> bool:
        """Claim the slot unless a live record exists."""
        return self._claim() is not None

    def acquire(self) -> Lease:
        """
        Claim the slot or raise.

        Raises:
            AlreadyGeneratingError: A live record already exists
        """
        lease = self._claim()
        if lease is None:
            raise AlreadyGeneratingError(
                "A plan is already being generated. Please wait for it to complete."
            )
        return lease

    def adopt(self) -> Lease:
        """Take the slot for a job the server already runs, replacing any record."""
        with self._lock:
            lease = self._write(self.now())
        logger.info(f"[LEASE] Adopted by {self.holder}")
        return lease

    def renew(self) -> Optional[Lease]:
        """Restart the staleness window if this holder owns a live record."""
        with self._lock:
            record = self.current()
            if record is None or record.holder != self.holder:
                return None
            return self._write(self.now())

    def owns(self) -> bool:
        """True while this holder's record is live."""
        record = self.current()
        return record is not None and record.holder == self.holder

    def release(self) -> None:
        """Clear the record unconditionally."""
        self.store.delete(self.key)
        self.store.delete(self.key + HOLDER_SUFFIX)

    def release_if_owned(self) -> bool:
        """Clear the record unless another holder has a live one."""
        record = self.read()
        if record is not None and record.holder not in (None, self.holder):
            if not self.is_stale(record):
                return False
        self.release()
        return True

    def clear_if_stale(self) -> bool:
        """Self-heal a record left behind by a crashed or closed client."""
        record = self.read()
        if record is None or not self.is_stale(record):
            return False
        minutes = record.age(self.now()).total_seconds() / 60
        logger.info(f"[LEASE] Cleared stale record ({minutes:.1f} min old)")
        self.release()
        return True

    @contextmanager
    def hold(self) -> Iterator[Lease]:
        """Acquire for the duration of a block; always released on exit."""
        lease = self.acquire()
        try:
            yield lease
        finally:
            self.release()
