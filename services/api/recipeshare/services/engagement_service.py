"""
Rating & engagement engine.

Owns the per-recipe rating list, like set and view counter. The average
rating is never stored: it is derived from the ratings table on every read,
so there is nothing to keep in sync when a rating changes.

Every operation resolves the recipe through the visibility rule first: a
draft or private recipe cannot be rated, liked, viewed or listed by anyone
but its author.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from opentelemetry import trace
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.errors import ConflictError, NotFoundError, ValidationError
from recipeshare.models import NotificationType, Rating, Recipe, RecipeLike, User, utcnow
from recipeshare.services.lookups import average_rating, require_visible_recipe
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.telemetry import ENGAGEMENT_ACTIONS_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

MIN_RATING = 1
MAX_RATING = 5


@dataclass
class RatingSummary:
    average_rating: float
    ratings_count: int


@dataclass
class LikeState:
    is_liked: bool
    likes_count: int


class EngagementService:
    def __init__(self, db: AsyncSession, notifier: NotificationPipeline):
        self._db = db
        self._notifier = notifier

    async def rating_summary(self, recipe_id: str) -> RatingSummary:
        total, count = (
            await self._db.execute(
                select(func.sum(Rating.value), func.count()).where(
                    Rating.recipe_id == recipe_id
                )
            )
        ).one()
        return RatingSummary(average_rating=average_rating(total, count), ratings_count=count)

    async def rate(
        self,
        recipe_id: str,
        user_id: str,
        value: int,
        review: Optional[str] = None,
    ) -> RatingSummary:
        """
        Record `user_id`'s rating of a recipe.

        A second rating by the same user overwrites the first in place
        (value, review and timestamp); there is never more than one entry
        per user. Only the first rating notifies the author.
        """
        if isinstance(value, bool) or not isinstance(value, int) or not (
            MIN_RATING <= value <= MAX_RATING
        ):
            raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}")

        with tracer.start_as_current_span("rate_recipe") as span:
            span.set_attribute("recipe.id", recipe_id)
            recipe = await require_visible_recipe(self._db, recipe_id, user_id)
            # a rollback below expires the instance
            author_id, title = recipe.author_id, recipe.title

            created = await self._upsert_rating(recipe_id, user_id, value, review)
            ENGAGEMENT_ACTIONS_TOTAL.labels(action="rate").inc()

            summary = await self.rating_summary(recipe_id)

        if created:
            await self._notifier.notify(
                author_id,
                user_id,
                NotificationType.RATING,
                recipe_id=recipe_id,
                recipe_title=title,
            )
        logger.info(
            "%s rated recipe %s: %d (avg=%.1f, n=%d)",
            user_id, recipe_id, value, summary.average_rating, summary.ratings_count,
        )
        return summary

    async def _upsert_rating(
        self, recipe_id: str, user_id: str, value: int, review: Optional[str]
    ) -> bool:
        """Write the rating row; True when this call created it."""
        existing = await self._db.get(Rating, (recipe_id, user_id))
        if existing is None:
            self._db.add(Rating(recipe_id=recipe_id, user_id=user_id, value=value, review=review))
            try:
                await self._db.commit()
                return True
            except IntegrityError:
                # a concurrent first rating by the same user inserted the row
                await self._db.rollback()
                logger.info("Rating insert lost a race for %s/%s; overwriting", recipe_id, user_id)
                return await self._upsert_rating(recipe_id, user_id, value, review)

        existing.value = value
        existing.review = review
        existing.rated_at = utcnow()
        await self._db.commit()
        return False

    async def remove_rating(self, recipe_id: str, user_id: str) -> RatingSummary:
        await require_visible_recipe(self._db, recipe_id, user_id)
        existing = await self._db.get(Rating, (recipe_id, user_id))
        if existing is None:
            raise ConflictError("You have not rated this recipe")
        await self._db.delete(existing)
        await self._db.commit()
        ENGAGEMENT_ACTIONS_TOTAL.labels(action="unrate").inc()
        return await self.rating_summary(recipe_id)

    async def likes_count(self, recipe_id: str) -> int:
        count = await self._db.scalar(
            select(func.count()).select_from(RecipeLike).where(RecipeLike.recipe_id == recipe_id)
        )
        return count or 0

    async def toggle_like(self, recipe_id: str, user_id: str) -> LikeState:
        """Like the recipe if `user_id` has not, otherwise unlike it."""
        with tracer.start_as_current_span("toggle_recipe_like") as span:
            span.set_attribute("recipe.id", recipe_id)
            recipe = await require_visible_recipe(self._db, recipe_id, user_id)

            existing = await self._db.get(RecipeLike, (recipe_id, user_id))
            if existing is not None:
                await self._db.delete(existing)
            else:
                self._db.add(RecipeLike(recipe_id=recipe_id, user_id=user_id))
            await self._db.commit()

            is_liked = existing is None
            ENGAGEMENT_ACTIONS_TOTAL.labels(action="like" if is_liked else "unlike").inc()
            state = LikeState(is_liked=is_liked, likes_count=await self.likes_count(recipe_id))

        if is_liked:
            await self._notifier.notify(
                recipe.author_id,
                user_id,
                NotificationType.LIKE,
                recipe_id=recipe_id,
                recipe_title=recipe.title,
            )
        return state

    async def increment_views(self, recipe_id: str, viewer_id: Optional[str] = None) -> None:
        """Bump the view counter. Every call counts; there is no de-duplication."""
        await require_visible_recipe(self._db, recipe_id, viewer_id)
        result = await self._db.execute(
            update(Recipe)
            .where(Recipe.recipe_id == recipe_id)
            .values(views=Recipe.views + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError("Recipe", recipe_id)
        await self._db.commit()

    async def list_likes(self, recipe_id: str, viewer_id: Optional[str] = None) -> list[User]:
        await require_visible_recipe(self._db, recipe_id, viewer_id)
        rows = await self._db.scalars(
            select(User)
            .join(RecipeLike, RecipeLike.user_id == User.user_id)
            .where(RecipeLike.recipe_id == recipe_id)
            .order_by(RecipeLike.created_at.desc())
        )
        return list(rows.all())
