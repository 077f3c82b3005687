"""
Notification fan-out pipeline.

Every engagement action (like, comment, reply, rating, follow) hands the
affected party's notification to `NotificationPipeline.notify` after the
primary mutation has been committed. The write happens in its own session
and transaction:

  • a failed notification never rolls back the like / comment / follow
    that triggered it — the error is logged, counted and dropped;
  • an actor never notifies themselves (recipient == sender is a no-op).

Retention is time-based: rows older than `notification_retention_days`
are invisible to every read and mark path. `purge_expired` physically
removes them and is driven by the out-of-band reaper (recipeshare.reaper).
"""
import logging
from datetime import datetime, timedelta
from typing import Optional

from opentelemetry import trace
from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recipeshare.config import settings
from recipeshare.errors import AuthorizationError, NotFoundError
from recipeshare.models import Notification, NotificationType, utcnow
from recipeshare.pagination import Page, PageRequest, Pagination
from recipeshare.telemetry import (
    NOTIFICATIONS_CREATED_TOTAL,
    NOTIFICATIONS_FAILED_TOTAL,
    NOTIFICATIONS_SUPPRESSED_TOTAL,
)

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def render(
    kind: NotificationType,
    recipe_title: Optional[str] = None,
    sender_name: Optional[str] = None,
    on_comment: bool = False,
) -> tuple[str, str]:
    """Return the (title, message) pair for a notification of `kind`."""
    recipe = f' "{recipe_title}"' if recipe_title else ""
    if kind == NotificationType.LIKE:
        if on_comment:
            return "Comment Liked", "liked your comment"
        return "Recipe Liked", f"liked your recipe{recipe}"
    if kind == NotificationType.COMMENT:
        return "New Comment", f"commented on your recipe{recipe}"
    if kind == NotificationType.REPLY:
        return "Comment Reply", "replied to your comment"
    if kind == NotificationType.RATING:
        return "Recipe Rated", f"rated your recipe{recipe}"
    if kind == NotificationType.FOLLOW:
        who = sender_name or "Someone"
        return "New Follower", f"{who} started following you"
    return "Notification", "has an update for you"


class NotificationPipeline:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retention_days: int = settings.notification_retention_days,
    ):
        self._sessions = session_factory
        self.retention = timedelta(days=retention_days)

    def cutoff(self, now: Optional[datetime] = None) -> datetime:
        return (now or utcnow()) - self.retention

    def _visible(self):
        return Notification.created_at > self.cutoff()

    # ─────────────────────────── Write side ───────────────────────────────

    async def notify(
        self,
        recipient_id: str,
        sender_id: str,
        kind: NotificationType,
        *,
        recipe_id: Optional[str] = None,
        comment_id: Optional[str] = None,
        recipe_title: Optional[str] = None,
        sender_name: Optional[str] = None,
    ) -> Optional[Notification]:
        """
        Persist one notification for `recipient_id`.

        Returns the stored record, or None when the notification was
        suppressed (self-action) or could not be written.
        """
        if recipient_id == sender_id:
            NOTIFICATIONS_SUPPRESSED_TOTAL.inc()
            return None

        title, message = render(
            kind,
            recipe_title=recipe_title,
            sender_name=sender_name,
            on_comment=comment_id is not None and kind == NotificationType.LIKE,
        )

        with tracer.start_as_current_span("notify") as span:
            span.set_attribute("notification.type", kind.value)
            span.set_attribute("notification.recipient_id", recipient_id)
            try:
                async with self._sessions() as session:
                    notification = Notification(
                        recipient_id=recipient_id,
                        sender_id=sender_id,
                        type=kind.value,
                        title=title,
                        message=message,
                        recipe_id=recipe_id,
                        comment_id=comment_id,
                    )
                    session.add(notification)
                    await session.commit()
            except Exception as exc:
                NOTIFICATIONS_FAILED_TOTAL.inc()
                logger.warning(
                    "Dropped %s notification %s → %s: %s",
                    kind.value, sender_id, recipient_id, exc,
                )
                return None

        NOTIFICATIONS_CREATED_TOTAL.labels(type=kind.value).inc()
        logger.debug("Notified %s (%s from %s)", recipient_id, kind.value, sender_id)
        return notification

    async def _load_owned(
        self,
        session: AsyncSession,
        notification_id: str,
        caller_id: str,
        verb: str = "update",
    ) -> Notification:
        notification = await session.get(Notification, notification_id)
        if notification is None or notification.created_at <= self.cutoff():
            raise NotFoundError("Notification", notification_id)
        if notification.recipient_id != caller_id:
            raise AuthorizationError(f"You can only {verb} your own notifications")
        return notification

    async def mark_read(self, notification_id: str, caller_id: str) -> Notification:
        """Mark one notification read. Marking an already-read one is a no-op."""
        async with self._sessions() as session:
            notification = await self._load_owned(session, notification_id, caller_id)
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = utcnow()
                await session.commit()
            return notification

    async def mark_unread(self, notification_id: str, caller_id: str) -> Notification:
        async with self._sessions() as session:
            notification = await self._load_owned(session, notification_id, caller_id)
            if notification.is_read:
                notification.is_read = False
                notification.read_at = None
                await session.commit()
            return notification

    async def delete(self, notification_id: str, caller_id: str) -> None:
        """Remove one of the caller's own notifications."""
        async with self._sessions() as session:
            notification = await self._load_owned(
                session, notification_id, caller_id, verb="delete"
            )
            await session.delete(notification)
            await session.commit()
        logger.debug("Deleted notification %s for %s", notification_id, caller_id)

    async def mark_all_read(self, user_id: str) -> int:
        """Flip every visible unread notification of `user_id`; returns how many."""
        async with self._sessions() as session:
            result = await session.execute(
                update(Notification)
                .where(
                    Notification.recipient_id == user_id,
                    Notification.is_read.is_(False),
                    self._visible(),
                )
                .values(is_read=True, read_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        logger.info("Marked %d notifications read for %s", result.rowcount, user_id)
        return result.rowcount

    # ─────────────────────────── Read side ────────────────────────────────

    async def unread_count(self, user_id: str) -> int:
        async with self._sessions() as session:
            count = await session.scalar(
                select(func.count())
                .select_from(Notification)
                .where(
                    Notification.recipient_id == user_id,
                    Notification.is_read.is_(False),
                    self._visible(),
                )
            )
        return count or 0

    async def list(self, user_id: str, page: PageRequest) -> Page[Notification]:
        """Visible notifications for `user_id`, newest first."""
        where = (Notification.recipient_id == user_id, self._visible())
        async with self._sessions() as session:
            total = await session.scalar(
                select(func.count()).select_from(Notification).where(*where)
            )
            rows = await session.scalars(
                select(Notification)
                .where(*where)
                .order_by(
                    Notification.created_at.desc(),
                    Notification.notification_id.desc(),
                )
                .offset(page.offset)
                .limit(page.limit)
            )
            items = list(rows.all())
        return Page(items=items, pagination=Pagination.build(page, total or 0))

    # ─────────────────────────── Retention ────────────────────────────────

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete notifications past the retention window; returns row count."""
        async with self._sessions() as session:
            result = await session.execute(
                delete(Notification)
                .where(Notification.created_at <= self.cutoff(now))
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        return result.rowcount
