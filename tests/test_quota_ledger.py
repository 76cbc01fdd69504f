import os
import sys
import tempfile
import threading
import unittest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.core.quota_ledger import DAY_SECONDS, QuotaLedger  # noqa: E402
from app.core.quota_store import (  # noqa: E402
    InMemoryQuotaStore,
    QuotaKey,
    QuotaStoreError,
    SqliteQuotaStore,
)
from app.normalize.fingerprint import fingerprint  # noqa: E402
from app.normalize.text import ANONYMOUS_IDENTITY  # noqa: E402

FP = fingerprint("Senior petroleum engineer with 10 years in drilling operations")


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class BrokenStore:
    def locked(self, key):
        raise QuotaStoreError("database is locked")

    def get(self, key):
        raise QuotaStoreError("database is locked")

    def put(self, record):
        raise QuotaStoreError("database is locked")

    def purge(self, cutoff):
        raise QuotaStoreError("database is locked")


class LedgerContractMixin:
    def make_store(self):
        raise NotImplementedError

    def setUp(self):
        self.clock = FakeClock()
        self.store = self.make_store()
        self.ledger = QuotaLedger(
            self.store,
            bucket_seconds=DAY_SECONDS,
            retention_seconds=7 * DAY_SECONDS,
            purge_interval_seconds=0,
            clock=self.clock,
        )

    def test_three_free_analyses_then_denied(self):
        results = [self.ledger.check_and_consume(FP, "ana@example.com", 3) for _ in range(4)]
        self.assertEqual([r.allowed for r in results], [True, True, True, False])
        self.assertEqual([r.remaining for r in results], [2, 1, 0, 0])

    def test_denied_calls_do_not_mutate_record(self):
        for _ in range(2):
            self.ledger.check_and_consume(FP, "ana@example.com", 2)
        key = self.ledger.key_for(FP, "ana@example.com", self.clock())
        before = self.store.get(key)

        self.clock.now += 60
        for _ in range(5):
            decision = self.ledger.check_and_consume(FP, "ana@example.com", 2)
            self.assertFalse(decision.allowed)
            self.assertEqual(decision.remaining, 0)

        after = self.store.get(key)
        self.assertEqual(after.count, 2)
        self.assertEqual(after.last_seen_at, before.last_seen_at)

    def test_identities_have_independent_allowance(self):
        for identity in ("ana@example.com", "luis@example.com", ANONYMOUS_IDENTITY):
            granted = [self.ledger.check_and_consume(FP, identity, 2).allowed for _ in range(3)]
            self.assertEqual(granted, [True, True, False])

    def test_distinct_content_has_independent_allowance(self):
        other = fingerprint("Registered nurse, hospital ICU")
        self.assertTrue(self.ledger.check_and_consume(FP, None, 1).allowed)
        self.assertFalse(self.ledger.check_and_consume(FP, None, 1).allowed)
        self.assertTrue(self.ledger.check_and_consume(other, None, 1).allowed)

    def test_next_bucket_grants_fresh_allowance(self):
        self.assertTrue(self.ledger.check_and_consume(FP, "ana@example.com", 1).allowed)
        self.assertFalse(self.ledger.check_and_consume(FP, "ana@example.com", 1).allowed)
        self.clock.now += DAY_SECONDS
        decision = self.ledger.check_and_consume(FP, "ana@example.com", 1)
        self.assertTrue(decision.allowed)
        self.assertEqual(decision.remaining, 0)

    def test_non_positive_limit_denies_without_recording(self):
        decision = self.ledger.check_and_consume(FP, None, 0)
        self.assertFalse(decision.allowed)
        self.assertEqual(decision.remaining, 0)
        self.assertIsNone(self.store.get(self.ledger.key_for(FP, None, self.clock())))

    def test_purge_removes_records_past_retention(self):
        self.ledger.check_and_consume(FP, "ana@example.com", 3)
        old_key = self.ledger.key_for(FP, "ana@example.com", self.clock())

        self.clock.now += 8 * DAY_SECONDS
        deleted = self.ledger.purge_expired()

        self.assertEqual(deleted, 1)
        self.assertIsNone(self.store.get(old_key))

    def test_purge_keeps_recent_records(self):
        self.ledger.check_and_consume(FP, "ana@example.com", 3)
        self.clock.now += 2 * DAY_SECONDS
        self.assertEqual(self.ledger.purge_expired(), 0)

    def test_concurrent_consumption_never_exceeds_limit(self):
        max_free = 5
        barrier = threading.Barrier(2 * max_free)

        def consume(_):
            barrier.wait()
            return self.ledger.check_and_consume(FP, "race@example.com", max_free)

        with ThreadPoolExecutor(max_workers=2 * max_free) as pool:
            results = list(pool.map(consume, range(2 * max_free)))

        granted = [r for r in results if r.allowed]
        self.assertEqual(len(granted), max_free)
        self.assertEqual(sorted(r.remaining for r in granted), list(range(max_free)))
        key = self.ledger.key_for(FP, "race@example.com", self.clock())
        self.assertEqual(self.store.get(key).count, max_free)


class InMemoryQuotaLedgerTests(LedgerContractMixin, unittest.TestCase):
    def make_store(self):
        return InMemoryQuotaStore()


class SqliteQuotaLedgerTests(LedgerContractMixin, unittest.TestCase):
    def make_store(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        store = SqliteQuotaStore(os.path.join(self._tmp.name, "quota.db"))
        self.addCleanup(store.close)
        return store

    def test_records_survive_a_new_store_instance(self):
        self.ledger.check_and_consume(FP, "ana@example.com", 2)
        self.store.close()

        reopened = SqliteQuotaStore(os.path.join(self._tmp.name, "quota.db"))
        self.addCleanup(reopened.close)
        ledger = QuotaLedger(reopened, purge_interval_seconds=0, clock=self.clock)
        self.assertTrue(ledger.check_and_consume(FP, "ana@example.com", 2).allowed)
        self.assertFalse(ledger.check_and_consume(FP, "ana@example.com", 2).allowed)

    def test_record_key_columns_match_quota_key(self):
        self.ledger.check_and_consume(FP, "ana@example.com", 2)
        key = QuotaKey(FP, "ana@example.com", self.ledger.bucket_for(self.clock()))
        record = self.store.get(key)
        self.assertEqual(record.count, 1)
        self.assertEqual(record.created_at, self.clock())


class DegradedQuotaLedgerTests(unittest.TestCase):
    def test_store_failure_degrades_to_in_memory_allowance(self):
        ledger = QuotaLedger(BrokenStore(), purge_interval_seconds=0, clock=FakeClock())
        with self.assertLogs("app.core.quota_ledger", level="WARNING"):
            results = [ledger.check_and_consume(FP, None, 2) for _ in range(3)]
        self.assertEqual([r.allowed for r in results], [True, True, False])
        self.assertTrue(all(r.degraded for r in results))

    def test_purge_failure_is_absorbed(self):
        ledger = QuotaLedger(BrokenStore(), purge_interval_seconds=0, clock=FakeClock())
        with self.assertLogs("app.core.quota_ledger", level="WARNING"):
            self.assertEqual(ledger.purge_expired(), 0)

    def test_unwritable_sqlite_path_degrades(self):
        with tempfile.NamedTemporaryFile() as blocker:
            store = SqliteQuotaStore(os.path.join(blocker.name, "nested", "quota.db"))
            ledger = QuotaLedger(store, purge_interval_seconds=0, clock=FakeClock())
            with self.assertLogs("app.core.quota_ledger", level="WARNING"):
                decision = ledger.check_and_consume(FP, None, 3)
        self.assertTrue(decision.allowed)
        self.assertTrue(decision.degraded)

    def test_retention_must_exceed_bucket(self):
        with self.assertRaises(ValueError):
            QuotaLedger(InMemoryQuotaStore(), bucket_seconds=DAY_SECONDS, retention_seconds=DAY_SECONDS)


if __name__ == "__main__":
    unittest.main()
