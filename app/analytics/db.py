from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from app.core.config import settings


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _get_db_path() -> Path:
    return Path(settings.analytics_db_path)


def _connect() -> sqlite3.Connection:
    db_path = _get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=5)
    _ensure_schema(conn)
    return conn


def _ensure_schema(conn: sqlite3.Connection) -> None:
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS analysis_runs (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TEXT NOT NULL,
            run_id TEXT NOT NULL,
            cv_hash TEXT NOT NULL,
            model TEXT NOT NULL,
            tier TEXT NOT NULL,
            provider_status TEXT NOT NULL,
            error_code TEXT,
            latency_ms INTEGER
        )
        """
    )
    conn.execute(
        """
        CREATE INDEX IF NOT EXISTS idx_analysis_runs_created_at
        ON analysis_runs (created_at)
        """
    )
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS quota_denials (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            created_at TEXT NOT NULL,
            cv_hash TEXT NOT NULL,
            anonymous INTEGER NOT NULL
        )
        """
    )


def init_db() -> None:
    if not settings.analytics_enabled:
        return
    with _connect() as conn:
        conn.commit()
    purge_old_records()


def log_analysis_run(
    *,
    run_id: str,
    cv_hash: str,
    model: str,
    tier: str,
    provider_status: str,
    error_code: str | None = None,
    latency_ms: int | None = None,
) -> None:
    if not settings.analytics_enabled:
        return
    with _connect() as conn:
        conn.execute(
            """
            INSERT INTO analysis_runs (
                created_at, run_id, cv_hash, model, tier, provider_status, error_code, latency_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                _utc_now(),
                run_id,
                cv_hash,
                model,
                tier,
                provider_status,
                error_code,
                latency_ms,
            ),
        )
        conn.commit()


def log_quota_denial(*, cv_hash: str, anonymous: bool) -> None:
    if not settings.analytics_enabled:
        return
    with _connect() as conn:
        conn.execute(
            "INSERT INTO quota_denials (created_at, cv_hash, anonymous) VALUES (?, ?, ?)",
            (_utc_now(), cv_hash, 1 if anonymous else 0),
        )
        conn.commit()


def purge_old_records() -> dict[str, int]:
    if not settings.analytics_enabled:
        return {"analysis_runs": 0, "quota_denials": 0}

    retention = max(1, int(settings.analytics_retention_days))
    cutoff = datetime.fromtimestamp(
        datetime.now(timezone.utc).timestamp() - retention * 86400, tz=timezone.utc
    ).isoformat()

    deleted = {"analysis_runs": 0, "quota_denials": 0}
    with _connect() as conn:
        cur = conn.execute("DELETE FROM analysis_runs WHERE created_at < ?", (cutoff,))
        deleted["analysis_runs"] = int(cur.rowcount or 0)

        cur = conn.execute("DELETE FROM quota_denials WHERE created_at < ?", (cutoff,))
        deleted["quota_denials"] = int(cur.rowcount or 0)
        conn.commit()

    return deleted


def _row_to_dict(cursor: sqlite3.Cursor, row: tuple) -> dict[str, Any]:
    return {col[0]: row[idx] for idx, col in enumerate(cursor.description)}


def get_summary() -> dict[str, Any]:
    if not settings.analytics_enabled:
        return {"enabled": False}
    with _connect() as conn:
        cur = conn.execute("SELECT COUNT(*) FROM analysis_runs")
        total = cur.fetchone()[0]
        cur = conn.execute(
            """
            SELECT tier, provider_status, COUNT(*) AS count, AVG(latency_ms) AS avg_latency_ms
            FROM analysis_runs
            GROUP BY tier, provider_status
            ORDER BY count DESC
            """
        )
        by_tier = [_row_to_dict(cur, row) for row in cur.fetchall()]
        cur = conn.execute("SELECT COUNT(*) FROM quota_denials")
        denials = cur.fetchone()[0]
    return {
        "enabled": True,
        "total": total,
        "by_tier": by_tier,
        "quota_denials": denials,
    }


def get_latest(limit: int = 20) -> list[dict[str, Any]]:
    if not settings.analytics_enabled:
        return []
    with _connect() as conn:
        cur = conn.execute(
            """
            SELECT created_at, run_id, cv_hash, model, tier, provider_status, error_code, latency_ms
            FROM analysis_runs
            ORDER BY id DESC
            LIMIT ?
            """,
            (limit,),
        )
        rows = cur.fetchall()
        return [_row_to_dict(cur, row) for row in rows]
