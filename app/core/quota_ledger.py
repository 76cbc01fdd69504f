from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from app.core.quota_store import InMemoryQuotaStore, QuotaKey, QuotaRecord, QuotaStore, SqliteQuotaStore
from app.normalize.fingerprint import short_fingerprint
from app.normalize.text import ANONYMOUS_IDENTITY

logger = logging.getLogger(__name__)

DAY_SECONDS = 86400


@dataclass(frozen=True)
class QuotaDecision:
    allowed: bool
    remaining: int
    count: int
    max_free: int
    degraded: bool = False


class QuotaLedger:
    """Free-analysis allowance per (content fingerprint, identity, time bucket).

    The check-then-increment step runs inside ``store.locked(key)`` so that a
    key behaves as if all calls were serialized. Store failures are logged and
    absorbed: the ledger switches that call to a private in-memory store and
    keeps answering, trading strict enforcement for availability.
    """

    def __init__(
        self,
        store: QuotaStore,
        *,
        bucket_seconds: int = DAY_SECONDS,
        retention_seconds: int = 7 * DAY_SECONDS,
        purge_interval_seconds: int = 3600,
        clock: Callable[[], float] = time.time,
    ):
        if bucket_seconds < 1:
            raise ValueError("bucket_seconds must be positive")
        if retention_seconds <= bucket_seconds:
            raise ValueError("retention_seconds must be longer than bucket_seconds")
        self._store = store
        self._fallback = InMemoryQuotaStore()
        self._bucket_seconds = int(bucket_seconds)
        self._retention_seconds = int(retention_seconds)
        self._purge_interval_seconds = max(0, int(purge_interval_seconds))
        self._clock = clock
        self._purge_lock = threading.Lock()
        self._last_purge_at: float | None = None

    @property
    def store(self) -> QuotaStore:
        return self._store

    def bucket_for(self, now: float) -> int:
        return int(now // self._bucket_seconds)

    def key_for(self, fingerprint: str, identity: str | None, now: float) -> QuotaKey:
        return QuotaKey(
            fingerprint=fingerprint,
            identity=identity or ANONYMOUS_IDENTITY,
            bucket=self.bucket_for(now),
        )

    def check_and_consume(self, fingerprint: str, identity: str | None, max_free: int) -> QuotaDecision:
        now = self._clock()
        max_free = int(max_free)
        if max_free < 1:
            return QuotaDecision(allowed=False, remaining=0, count=0, max_free=max_free)

        key = self.key_for(fingerprint, identity, now)
        self._maybe_purge(now)

        try:
            decision = self._consume(self._store, key, max_free, now)
        except Exception as exc:  # noqa: BLE001 - availability over strict quota
            logger.warning(
                "quota_store_degraded cv=%s store=%s: %s",
                short_fingerprint(fingerprint),
                type(self._store).__name__,
                exc,
            )
            decision = self._consume(self._fallback, key, max_free, now)
            decision = QuotaDecision(
                allowed=decision.allowed,
                remaining=decision.remaining,
                count=decision.count,
                max_free=decision.max_free,
                degraded=True,
            )

        if not decision.allowed:
            logger.info(
                "quota_denied cv=%s anonymous=%s count=%s max_free=%s",
                short_fingerprint(fingerprint),
                key.identity == ANONYMOUS_IDENTITY,
                decision.count,
                max_free,
            )
        return decision

    def _consume(self, store: QuotaStore, key: QuotaKey, max_free: int, now: float) -> QuotaDecision:
        with store.locked(key):
            record = store.get(key)
            if record is None:
                store.put(QuotaRecord(key=key, count=1, created_at=now, last_seen_at=now))
                return QuotaDecision(allowed=True, remaining=max_free - 1, count=1, max_free=max_free)

            if record.count >= max_free:
                return QuotaDecision(allowed=False, remaining=0, count=record.count, max_free=max_free)

            updated = record.consumed(now)
            store.put(updated)
            return QuotaDecision(
                allowed=True,
                remaining=max(0, max_free - updated.count),
                count=updated.count,
                max_free=max_free,
            )

    def _maybe_purge(self, now: float) -> None:
        if not self._purge_lock.acquire(blocking=False):
            return
        try:
            last = self._last_purge_at
            if last is not None and now - last < self._purge_interval_seconds:
                return
            self._last_purge_at = now
        finally:
            self._purge_lock.release()
        self.purge_expired(now)

    def purge_expired(self, now: float | None = None) -> int:
        """Drop records idle for longer than the retention horizon. Never raises."""
        current = self._clock() if now is None else now
        cutoff = current - self._retention_seconds
        deleted = 0
        try:
            deleted += self._store.purge(cutoff)
        except Exception as exc:  # noqa: BLE001
            logger.warning("quota_purge_failed store=%s: %s", type(self._store).__name__, exc)
        deleted += self._fallback.purge(cutoff)
        if deleted:
            logger.info("quota_retention_purge deleted=%s", deleted)
        return deleted


def build_quota_ledger(settings) -> QuotaLedger:
    if settings.quota_store == "sqlite":
        store: QuotaStore = SqliteQuotaStore(settings.quota_db_path)
    else:
        store = InMemoryQuotaStore()
    return QuotaLedger(
        store,
        bucket_seconds=settings.quota_bucket_seconds,
        retention_seconds=settings.quota_retention_days * DAY_SECONDS,
        purge_interval_seconds=settings.quota_purge_interval_s,
    )
