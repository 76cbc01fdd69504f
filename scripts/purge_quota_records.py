from __future__ import annotations

import argparse
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from app.analytics.db import purge_old_records  # noqa: E402
from app.core.config import settings  # noqa: E402
from app.core.quota_ledger import DAY_SECONDS, QuotaLedger  # noqa: E402
from app.core.quota_store import SqliteQuotaStore  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Purge expired quota records and old analysis-run logs.")
    parser.add_argument("--db", default=settings.quota_db_path, help="SQLite quota database path")
    parser.add_argument(
        "--retention-days",
        type=int,
        default=settings.quota_retention_days,
        help="Drop quota records idle for longer than this many days.",
    )
    parser.add_argument(
        "--skip-analytics",
        action="store_true",
        help="Only purge quota records.",
    )
    args = parser.parse_args()

    if args.retention_days * DAY_SECONDS <= settings.quota_bucket_seconds:
        parser.error("--retention-days must be longer than the quota bucket width")

    store = SqliteQuotaStore(args.db)
    ledger = QuotaLedger(
        store,
        bucket_seconds=settings.quota_bucket_seconds,
        retention_seconds=args.retention_days * DAY_SECONDS,
    )
    try:
        deleted = ledger.purge_expired()
    finally:
        store.close()
    print(f"quota_records deleted={deleted}")

    if not args.skip_analytics:
        print(f"analytics deleted={purge_old_records()}")


if __name__ == "__main__":
    main()
