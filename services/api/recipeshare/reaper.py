"""
Notification reaper — out-of-band retention worker.

Every `notification_reap_interval_seconds`:
  1. Compute the retention cutoff (now - notification_retention_days).
  2. DELETE every notification created at or before the cutoff.

Reads already hide expired rows, so the reaper only reclaims storage; a
late or skipped run never makes an expired notification visible again.

Run with:  python -m recipeshare.reaper
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recipeshare.config import settings
from recipeshare.database import AsyncSessionLocal, engine, init_db
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.telemetry import NOTIFICATIONS_REAPED_TOTAL, setup_tracing

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


async def purge_expired(
    session_factory: async_sessionmaker[AsyncSession],
    now: Optional[datetime] = None,
) -> int:
    """One reaper pass; returns the number of notifications removed."""
    with tracer.start_as_current_span("reap_notifications") as span:
        removed = await NotificationPipeline(session_factory).purge_expired(now)
        span.set_attribute("notifications.reaped", removed)
    NOTIFICATIONS_REAPED_TOTAL.inc(removed)
    if removed:
        logger.info("Reaped %d expired notifications", removed)
    return removed


async def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s — %(message)s",
    )
    setup_tracing()
    await init_db()

    interval = settings.notification_reap_interval_seconds
    logger.info(
        "Notification reaper running every %ds (retention=%d days)",
        interval, settings.notification_retention_days,
    )

    try:
        while True:
            try:
                await purge_expired(AsyncSessionLocal)
            except Exception as exc:
                logger.error("Reaper pass failed: %s", exc)
            await asyncio.sleep(interval)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
