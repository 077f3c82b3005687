"""
Notification endpoints (always scoped to the caller):
  GET   /notifications               — newest first, with unread count
  GET   /notifications/unread-count  — badge count
  PATCH /notifications/read-all      — mark every visible one read
  PATCH /notifications/{id}/read     — mark one read
  PATCH /notifications/{id}/unread   — mark one unread
  DELETE /notifications/{id}          — remove one
"""
from typing import Optional

from fastapi import APIRouter, Depends

from recipeshare.config import settings
from recipeshare.deps import get_current_user_id, get_notifier
from recipeshare.pagination import PageRequest
from recipeshare.schemas import NotificationOut, envelope
from recipeshare.services.notification_pipeline import NotificationPipeline

router = APIRouter()


@router.get("/")
async def list_notifications(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    result = await notifier.list(
        user_id, PageRequest.of(page, limit, settings.social_page_size)
    )
    return envelope(
        data={
            "notifications": [NotificationOut.model_validate(n) for n in result.items],
            "unreadCount": await notifier.unread_count(user_id),
        },
        pagination=result.pagination,
    )


@router.get("/unread-count")
async def unread_count(
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    return envelope(data={"unreadCount": await notifier.unread_count(user_id)})


@router.patch("/read-all")
async def mark_all_read(
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    updated = await notifier.mark_all_read(user_id)
    return envelope(
        data={"updatedCount": updated},
        message="All notifications marked as read",
    )


@router.patch("/{notification_id}/read")
async def mark_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    notification = await notifier.mark_read(notification_id, user_id)
    return envelope(
        data={"notification": NotificationOut.model_validate(notification)},
        message="Notification marked as read",
    )


@router.patch("/{notification_id}/unread")
async def mark_unread(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    notification = await notifier.mark_unread(notification_id, user_id)
    return envelope(
        data={"notification": NotificationOut.model_validate(notification)},
        message="Notification marked as unread",
    )


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationPipeline = Depends(get_notifier),
):
    await notifier.delete(notification_id, user_id)
    return envelope(message="Notification deleted successfully")
