"""
FastAPI dependencies shared by the routers: the acting user and the
service objects bound to the request's session.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from recipeshare.database import get_db, get_session_factory
from recipeshare.services.comment_service import CommentService
from recipeshare.services.discovery_service import DiscoveryService
from recipeshare.services.engagement_service import EngagementService
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.services.recipe_service import RecipeService
from recipeshare.services.social_service import SocialGraphService


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """The auth gateway puts the verified caller in X-User-Id."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return x_user_id


async def get_optional_user_id(x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    return x_user_id or None


def get_notifier(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_session_factory),
) -> NotificationPipeline:
    return NotificationPipeline(session_factory)


def get_recipe_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationPipeline = Depends(get_notifier),
) -> RecipeService:
    return RecipeService(db, notifier)


def get_engagement_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationPipeline = Depends(get_notifier),
) -> EngagementService:
    return EngagementService(db, notifier)


def get_social_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationPipeline = Depends(get_notifier),
) -> SocialGraphService:
    return SocialGraphService(db, notifier)


def get_comment_service(
    db: AsyncSession = Depends(get_db),
    notifier: NotificationPipeline = Depends(get_notifier),
) -> CommentService:
    return CommentService(db, notifier)


def get_discovery_service(db: AsyncSession = Depends(get_db)) -> DiscoveryService:
    return DiscoveryService(db)
