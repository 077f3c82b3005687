"""
Social graph manager: follow / follower relations, favorite sets and user
search.

A follow is one row in `follows` (follower_id → followee_id). That single
row is both "B in A.following" and "A in B.followers", so the two sides of
the relation cannot drift apart even when a request dies half-way: there
is no second write to lose. The follow notification is written after the
edge is committed and is best-effort.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass

from opentelemetry import trace
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.errors import ConflictError, ValidationError
from recipeshare.models import Favorite, Follow, NotificationType, Recipe, User
from recipeshare.pagination import Page, PageRequest, Pagination
from recipeshare.services.discovery_service import visible
from recipeshare.services.lookups import require_recipe, require_user, require_visible_recipe
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.telemetry import ENGAGEMENT_ACTIONS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


@dataclass
class FollowState:
    is_following: bool
    followers_count: int
    following_count: int


@dataclass
class Profile:
    user: User
    followers_count: int
    following_count: int
    recipes_count: int


class SocialGraphService:
    def __init__(self, db: AsyncSession, notifier: NotificationPipeline):
        self._db = db
        self._notifier = notifier

    # ─────────────────────────── Follow graph ─────────────────────────────

    async def followers_count(self, user_id: str) -> int:
        count = await self._db.scalar(
            select(func.count()).select_from(Follow).where(Follow.followee_id == user_id)
        )
        return count or 0

    async def following_count(self, user_id: str) -> int:
        count = await self._db.scalar(
            select(func.count()).select_from(Follow).where(Follow.follower_id == user_id)
        )
        return count or 0

    async def is_following(self, follower_id: str, followee_id: str) -> bool:
        return await self._db.get(Follow, (follower_id, followee_id)) is not None

    async def follow(self, follower_id: str, followee_id: str) -> FollowState:
        with tracer.start_as_current_span("follow_user"):
            if follower_id == followee_id:
                raise ValidationError("You cannot follow yourself")

            target = await require_user(self._db, followee_id)
            follower = await require_user(self._db, follower_id)

            if await self.is_following(follower_id, followee_id):
                raise ConflictError(f"You are already following {target.username}")

            self._db.add(Follow(follower_id=follower_id, followee_id=followee_id))
            await self._db.commit()
            ENGAGEMENT_ACTIONS_TOTAL.labels(action="follow").inc()
            logger.info("%s followed %s", follower_id, followee_id)

            state = FollowState(
                is_following=True,
                followers_count=await self.followers_count(followee_id),
                following_count=await self.following_count(follower_id),
            )

        await self._notifier.notify(
            followee_id,
            follower_id,
            NotificationType.FOLLOW,
            sender_name=follower.username,
        )
        return state

    async def unfollow(self, follower_id: str, followee_id: str) -> FollowState:
        with tracer.start_as_current_span("unfollow_user"):
            if follower_id == followee_id:
                raise ValidationError("You cannot unfollow yourself")

            target = await require_user(self._db, followee_id)
            edge = await self._db.get(Follow, (follower_id, followee_id))
            if edge is None:
                raise ConflictError(f"You are not following {target.username}")

            await self._db.delete(edge)
            await self._db.commit()
            ENGAGEMENT_ACTIONS_TOTAL.labels(action="unfollow").inc()
            logger.info("%s unfollowed %s", follower_id, followee_id)

            return FollowState(
                is_following=False,
                followers_count=await self.followers_count(followee_id),
                following_count=await self.following_count(follower_id),
            )

    async def _page_of_users(self, join_on, where, page: PageRequest, total: int) -> Page[User]:
        rows = await self._db.scalars(
            select(User)
            .join(Follow, join_on)
            .where(where)
            .order_by(Follow.created_at.desc(), User.user_id)
            .offset(page.offset)
            .limit(page.limit)
        )
        return Page(items=list(rows.all()), pagination=Pagination.build(page, total))

    async def list_followers(self, user_id: str, page: PageRequest) -> Page[User]:
        await require_user(self._db, user_id)
        return await self._page_of_users(
            Follow.follower_id == User.user_id,
            Follow.followee_id == user_id,
            page,
            await self.followers_count(user_id),
        )

    async def list_following(self, user_id: str, page: PageRequest) -> Page[User]:
        await require_user(self._db, user_id)
        return await self._page_of_users(
            Follow.followee_id == User.user_id,
            Follow.follower_id == user_id,
            page,
            await self.following_count(user_id),
        )

    async def get_profile(self, user_id: str) -> Profile:
        user = await require_user(self._db, user_id)
        recipes_count = await self._db.scalar(
            select(func.count())
            .select_from(Recipe)
            .where(
                Recipe.author_id == user_id,
                Recipe.is_published.is_(True),
                Recipe.is_public.is_(True),
            )
        )
        return Profile(
            user=user,
            followers_count=await self.followers_count(user_id),
            following_count=await self.following_count(user_id),
            recipes_count=recipes_count or 0,
        )

    # ─────────────────────────── Favorites ────────────────────────────────

    async def add_favorite(self, user_id: str, recipe_id: str) -> None:
        """Strict add: favoriting an already-favorited recipe is a Conflict."""
        await require_visible_recipe(self._db, recipe_id, user_id)
        await require_user(self._db, user_id)
        if await self._db.get(Favorite, (user_id, recipe_id)) is not None:
            raise ConflictError("Recipe is already in your favorites")
        self._db.add(Favorite(user_id=user_id, recipe_id=recipe_id))
        await self._db.commit()
        ENGAGEMENT_ACTIONS_TOTAL.labels(action="favorite").inc()

    async def remove_favorite(self, user_id: str, recipe_id: str) -> None:
        await require_recipe(self._db, recipe_id)
        await require_user(self._db, user_id)
        favorite = await self._db.get(Favorite, (user_id, recipe_id))
        if favorite is None:
            raise ConflictError("Recipe is not in your favorites")
        await self._db.delete(favorite)
        await self._db.commit()
        ENGAGEMENT_ACTIONS_TOTAL.labels(action="unfavorite").inc()

    async def list_favorites(self, user_id: str, page: PageRequest) -> Page[Recipe]:
        """Favorited recipes that are still published and public, newest first."""
        await require_user(self._db, user_id)
        where = (Favorite.user_id == user_id, *visible())
        total = await self._db.scalar(
            select(func.count())
            .select_from(Favorite)
            .join(Recipe, Favorite.recipe_id == Recipe.recipe_id)
            .where(*where)
        )
        rows = await self._db.scalars(
            select(Recipe)
            .join(Favorite, Favorite.recipe_id == Recipe.recipe_id)
            .where(*where)
            .order_by(Recipe.created_at.desc(), Recipe.recipe_id)
            .offset(page.offset)
            .limit(page.limit)
        )
        return Page(items=list(rows.all()), pagination=Pagination.build(page, total or 0))

    # ─────────────────────────── User search ──────────────────────────────

    async def search_users(self, text: str, page: PageRequest) -> Page[User]:
        """Case-insensitive substring match on username or display name."""
        text = (text or "").strip()
        if not text:
            raise ValidationError("Search query is required")

        where = or_(
            User.username.icontains(text, autoescape=True),
            User.display_name.icontains(text, autoescape=True),
        )
        total = await self._db.scalar(select(func.count()).select_from(User).where(where))
        rows = await self._db.scalars(
            select(User)
            .where(where)
            .order_by(User.username, User.user_id)
            .offset(page.offset)
            .limit(page.limit)
        )
        return Page(items=list(rows.all()), pagination=Pagination.build(page, total or 0))
