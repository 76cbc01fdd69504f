from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from app.analytics.db import log_quota_denial
from app.core.quota_ledger import QuotaLedger
from app.normalize.fingerprint import fingerprint, short_fingerprint
from app.normalize.text import is_anonymous, normalize_identity, normalize_text
from app.schemas.analysis import AnalysisResult
from app.services.analysis_service import AnalysisOrchestrator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublicAnalysis:
    allowed: bool
    remaining: int
    cv_hash: str
    analysis: AnalysisResult | None = None


async def analyze_public_cv(
    cv_text: str | None,
    email: str | None,
    *,
    ledger: QuotaLedger,
    orchestrator: AnalysisOrchestrator,
    max_free: int,
) -> PublicAnalysis:
    """Quota-gated analysis of one submission.

    Denied submissions never reach the orchestrator. Neither step raises. The
    ledger runs in a worker thread since a shared SQLite store may wait on a
    write lock held by another process.
    """
    text = normalize_text(cv_text)
    identity = normalize_identity(email)
    digest = fingerprint(text)
    cv_hash = short_fingerprint(digest)

    decision = await asyncio.to_thread(ledger.check_and_consume, digest, identity, max_free)
    if not decision.allowed:
        _record_denial(cv_hash, anonymous=is_anonymous(identity))
        return PublicAnalysis(allowed=False, remaining=0, cv_hash=cv_hash)

    outcome = await orchestrator.analyze(text)
    logger.info(
        "public_cv_analyzed cv=%s tier=%s remaining=%s degraded_quota=%s",
        cv_hash,
        outcome.tier,
        decision.remaining,
        decision.degraded,
    )
    return PublicAnalysis(
        allowed=True,
        remaining=decision.remaining,
        cv_hash=cv_hash,
        analysis=outcome.result,
    )


def _record_denial(cv_hash: str, *, anonymous: bool) -> None:
    try:
        log_quota_denial(cv_hash=cv_hash, anonymous=anonymous)
    except Exception:  # pragma: no cover - analytics must not break responses
        logger.debug("quota_denial_logging_failed", exc_info=True)
