from __future__ import annotations

import contextlib
import os
import sqlite3
import threading
import zlib
from dataclasses import dataclass, replace
from typing import Iterator, Protocol


class QuotaStoreError(RuntimeError):
    def __init__(self, message: str, *, code: str = "quota_store_unavailable"):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class QuotaKey:
    fingerprint: str
    identity: str
    bucket: int

    def as_string(self) -> str:
        return f"{self.fingerprint}:{self.identity}:{self.bucket}"


@dataclass(frozen=True)
class QuotaRecord:
    key: QuotaKey
    count: int
    created_at: float
    last_seen_at: float

    def consumed(self, now: float) -> "QuotaRecord":
        return replace(self, count=self.count + 1, last_seen_at=now)


class QuotaStore(Protocol):
    def locked(self, key: QuotaKey) -> contextlib.AbstractContextManager[None]: ...

    def get(self, key: QuotaKey) -> QuotaRecord | None: ...

    def put(self, record: QuotaRecord) -> None: ...

    def purge(self, cutoff: float) -> int: ...


class InMemoryQuotaStore:
    """Process-local store. get/put on one key are atomic only inside ``locked(key)``."""

    def __init__(self, *, lock_stripes: int = 64):
        self._records: dict[QuotaKey, QuotaRecord] = {}
        self._records_lock = threading.Lock()
        self._stripes = [threading.Lock() for _ in range(max(1, lock_stripes))]

    def _stripe(self, key: QuotaKey) -> threading.Lock:
        index = zlib.crc32(key.as_string().encode("utf-8")) % len(self._stripes)
        return self._stripes[index]

    @contextlib.contextmanager
    def locked(self, key: QuotaKey) -> Iterator[None]:
        with self._stripe(key):
            yield

    def get(self, key: QuotaKey) -> QuotaRecord | None:
        with self._records_lock:
            return self._records.get(key)

    def put(self, record: QuotaRecord) -> None:
        with self._records_lock:
            self._records[record.key] = record

    def purge(self, cutoff: float) -> int:
        with self._records_lock:
            stale = [key for key, record in self._records.items() if record.last_seen_at < cutoff]
            for key in stale:
                del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        with self._records_lock:
            return len(self._records)


class SqliteQuotaStore:
    """Keyed quota table; ``locked`` runs get/put inside one BEGIN IMMEDIATE transaction."""

    def __init__(self, db_path: str):
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None
        self._conn_lock = threading.RLock()

    def _get_connection(self) -> sqlite3.Connection:
        with self._conn_lock:
            if self._conn is not None:
                return self._conn

            directory = os.path.dirname(self._db_path)
            try:
                if directory:
                    os.makedirs(directory, exist_ok=True)

                conn = sqlite3.connect(
                    self._db_path,
                    check_same_thread=False,
                    timeout=5,
                    isolation_level=None,
                )
                conn.execute("PRAGMA journal_mode=WAL;")
                conn.execute("PRAGMA synchronous=NORMAL;")
                conn.execute("PRAGMA busy_timeout=5000;")
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS quota_records (
                        fingerprint TEXT NOT NULL,
                        identity TEXT NOT NULL,
                        bucket INTEGER NOT NULL,
                        count INTEGER NOT NULL,
                        created_at REAL NOT NULL,
                        last_seen_at REAL NOT NULL,
                        PRIMARY KEY (fingerprint, identity, bucket)
                    );
                    """
                )
                conn.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_quota_records_last_seen
                    ON quota_records (last_seen_at);
                    """
                )
            except (OSError, sqlite3.Error) as exc:
                raise QuotaStoreError(f"Unable to open quota database '{self._db_path}': {exc}") from exc
            self._conn = conn
            return self._conn

    @contextlib.contextmanager
    def locked(self, key: QuotaKey) -> Iterator[None]:
        _ = key
        conn = self._get_connection()
        with self._conn_lock:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as exc:
                raise QuotaStoreError(f"Unable to lock quota record: {exc}") from exc
            try:
                yield
            except BaseException:
                conn.rollback()
                raise
            try:
                conn.commit()
            except sqlite3.Error as exc:
                conn.rollback()
                raise QuotaStoreError(f"Unable to commit quota record: {exc}") from exc

    def get(self, key: QuotaKey) -> QuotaRecord | None:
        conn = self._get_connection()
        with self._conn_lock:
            try:
                row = conn.execute(
                    """
                    SELECT count, created_at, last_seen_at
                    FROM quota_records
                    WHERE fingerprint = ? AND identity = ? AND bucket = ?
                    """,
                    (key.fingerprint, key.identity, key.bucket),
                ).fetchone()
            except sqlite3.Error as exc:
                raise QuotaStoreError(f"Unable to read quota record: {exc}") from exc
        if not row:
            return None
        return QuotaRecord(key=key, count=int(row[0]), created_at=float(row[1]), last_seen_at=float(row[2]))

    def put(self, record: QuotaRecord) -> None:
        conn = self._get_connection()
        key = record.key
        with self._conn_lock:
            try:
                conn.execute(
                    """
                    INSERT INTO quota_records (
                        fingerprint, identity, bucket, count, created_at, last_seen_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT (fingerprint, identity, bucket)
                    DO UPDATE SET count = excluded.count, last_seen_at = excluded.last_seen_at
                    """,
                    (key.fingerprint, key.identity, key.bucket, record.count, record.created_at, record.last_seen_at),
                )
            except sqlite3.Error as exc:
                raise QuotaStoreError(f"Unable to write quota record: {exc}") from exc

    def purge(self, cutoff: float) -> int:
        conn = self._get_connection()
        with self._conn_lock:
            try:
                cur = conn.execute("DELETE FROM quota_records WHERE last_seen_at < ?", (cutoff,))
            except sqlite3.Error as exc:
                raise QuotaStoreError(f"Unable to purge quota records: {exc}") from exc
            return int(cur.rowcount or 0)

    def close(self) -> None:
        with self._conn_lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
