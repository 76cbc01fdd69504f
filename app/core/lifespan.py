import contextlib
from contextlib import asynccontextmanager
import asyncio
import logging

from app.analytics.db import init_db, purge_old_records
from app.core.config import settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    try:
        init_db()
    except Exception as exc:  # pragma: no cover - analytics must not block startup
        logger.warning("analytics_init_failed: %s", exc)

    stop_event = asyncio.Event()
    interval = max(60, int(settings.quota_purge_interval_s))

    async def periodic_purge() -> None:
        while not stop_event.is_set():
            ledger = getattr(app.state, "quota_ledger", None)
            if ledger is not None:
                await asyncio.to_thread(ledger.purge_expired)
            try:
                deleted = purge_old_records()
                if any(deleted.values()):
                    logger.info("analytics_retention_purge deleted=%s", deleted)
            except Exception as exc:  # pragma: no cover
                logger.warning("analytics_retention_purge_failed: %s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue

    purge_task = asyncio.create_task(periodic_purge())
    yield
    stop_event.set()
    if not purge_task.done():
        purge_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await purge_task
