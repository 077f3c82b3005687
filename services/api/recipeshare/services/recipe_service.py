"""
Recipe management: authoring, publishing, deletion, author statistics and
sharing.

Deleting a recipe walks every table that references it:

  comment_likes → notifications → replies → root comments
  → ratings → recipe_likes → favorites → labels → ingredients → recipe

Each step is a plain DELETE ... WHERE, so re-running the cascade after a
partial failure removes whatever is left and nothing else.
"""
from __future__ import annotations

import html
import logging
from dataclasses import dataclass
from typing import Optional

from opentelemetry import trace
from sqlalchemy import case, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.clients.kafka_producer import publish_share_email
from recipeshare.config import settings
from recipeshare.errors import AuthorizationError, NotFoundError, ValidationError
from recipeshare.models import (
    Comment,
    CommentLike,
    Favorite,
    LabelAxis,
    Notification,
    Rating,
    Recipe,
    RecipeIngredient,
    RecipeLabel,
    RecipeLike,
    utcnow,
)
from recipeshare.pagination import Page, PageRequest, Pagination
from recipeshare.services.engagement_service import EngagementService
from recipeshare.services.lookups import (
    require_recipe,
    require_user,
    require_visible_recipe,
    round1,
)
from recipeshare.services.notification_pipeline import NotificationPipeline
from recipeshare.telemetry import SHARE_EMAILS_FAILED_TOTAL

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

LABEL_FIELDS = {
    "meal_types": LabelAxis.MEAL_TYPE,
    "dietary_restrictions": LabelAxis.DIETARY,
    "tags": LabelAxis.TAG,
}

SHARE_METHODS = ("link", "email")


@dataclass
class AuthorStats:
    total_recipes: int
    published_recipes: int
    total_views: int
    total_likes: int
    total_ratings: int
    average_rating: float


@dataclass
class ShareResult:
    method: str
    share_link: str
    email_queued: bool = False


def share_link(recipe_id: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/recipes/{recipe_id}"


def _check_steps(instructions: list[dict]) -> None:
    steps = [step.get("step") for step in instructions]
    if steps != list(range(1, len(steps) + 1)):
        raise ValidationError("Instruction steps must be numbered 1..n in order")


def _ingredients(items: list[dict]) -> list[RecipeIngredient]:
    return [
        RecipeIngredient(
            position=position,
            name=item["name"],
            amount=item["amount"],
            unit=item["unit"],
            notes=item.get("notes"),
        )
        for position, item in enumerate(items)
    ]


def _labels(values: dict[LabelAxis, list[str]]) -> list[RecipeLabel]:
    labels = []
    for axis, items in values.items():
        # set semantics; first occurrence wins
        for value in dict.fromkeys(v.strip() for v in items if v and v.strip()):
            labels.append(RecipeLabel(axis=axis.value, value=value))
    return labels


def _share_email_html(recipe: Recipe, sharer_name: str, message: Optional[str]) -> str:
    note = ""
    if message:
        note = (
            '<p style="font-style: italic; background: #f5f5f5; padding: 10px;">'
            f'"{html.escape(message)}"</p>'
        )
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"<h2>{html.escape(sharer_name)} shared a recipe with you!</h2>"
        f"<h3>{html.escape(recipe.title)}</h3>"
        f"<p>{html.escape(recipe.description)}</p>"
        f"{note}"
        f'<p><a href="{share_link(recipe.recipe_id)}">View Recipe</a></p>'
        "</div>"
    )


class RecipeService:
    def __init__(self, db: AsyncSession, notifier: NotificationPipeline):
        self._db = db
        self._engagement = EngagementService(db, notifier)

    async def _require_owned(self, recipe_id: str, actor_id: str, verb: str) -> Recipe:
        recipe = await require_recipe(self._db, recipe_id)
        if recipe.author_id != actor_id:
            raise AuthorizationError(f"You can only {verb} your own recipes")
        return recipe

    # ─────────────────────────── Authoring ────────────────────────────────

    async def create_recipe(self, author_id: str, data: dict) -> Recipe:
        """
        Persist a new recipe from validated request data (snake_case keys).

        Recipes start as drafts unless `is_published` is set.
        """
        with tracer.start_as_current_span("create_recipe"):
            await require_user(self._db, author_id)
            data = dict(data)
            _check_steps(data["instructions"])

            ingredients = _ingredients(data.pop("ingredients"))
            labels = _labels(
                {axis: data.pop(field, None) or [] for field, axis in LABEL_FIELDS.items()}
            )
            recipe = Recipe(author_id=author_id, **data)
            recipe.ingredients = ingredients
            recipe.labels = labels
            if recipe.is_published:
                recipe.published_at = utcnow()

            self._db.add(recipe)
            await self._db.commit()

        logger.info("Created recipe %s by %s", recipe.recipe_id, author_id)
        return recipe

    async def get_recipe(self, recipe_id: str, viewer_id: Optional[str] = None) -> Recipe:
        """Fetch a recipe for display. Every successful fetch counts as a view."""
        recipe = await require_visible_recipe(self._db, recipe_id, viewer_id)
        await self._engagement.increment_views(recipe_id, viewer_id)
        await self._db.refresh(recipe, ["views"])
        return recipe

    async def update_recipe(self, recipe_id: str, actor_id: str, changes: dict) -> Recipe:
        """Apply a partial update; list-valued fields are replaced wholesale."""
        with tracer.start_as_current_span("update_recipe") as span:
            span.set_attribute("recipe.id", recipe_id)
            recipe = await self._require_owned(recipe_id, actor_id, "update")
            changes = dict(changes)

            if "instructions" in changes:
                _check_steps(changes["instructions"])

            if "ingredients" in changes:
                # old rows share primary keys with the new ones; flush the
                # deletes before the inserts are queued
                recipe.ingredients.clear()
                await self._db.flush()
                recipe.ingredients = _ingredients(changes.pop("ingredients"))

            if any(field in changes for field in LABEL_FIELDS):
                current = {axis: recipe.labels_for(axis) for axis in LabelAxis}
                for field, axis in LABEL_FIELDS.items():
                    if field in changes:
                        current[axis] = changes.pop(field) or []
                recipe.labels.clear()
                await self._db.flush()
                recipe.labels = _labels(current)

            for field, value in changes.items():
                setattr(recipe, field, value)
            if recipe.is_published and recipe.published_at is None:
                recipe.published_at = utcnow()
            recipe.updated_at = utcnow()

            await self._db.commit()
        return recipe

    async def publish(self, recipe_id: str, actor_id: str) -> Recipe:
        recipe = await self._require_owned(recipe_id, actor_id, "publish")
        if not recipe.is_published:
            recipe.is_published = True
            recipe.published_at = recipe.published_at or utcnow()
            await self._db.commit()
            logger.info("Published recipe %s", recipe_id)
        return recipe

    async def unpublish(self, recipe_id: str, actor_id: str) -> Recipe:
        recipe = await self._require_owned(recipe_id, actor_id, "unpublish")
        if recipe.is_published:
            recipe.is_published = False
            await self._db.commit()
            logger.info("Unpublished recipe %s", recipe_id)
        return recipe

    async def delete_recipe(self, recipe_id: str, actor_id: str) -> None:
        with tracer.start_as_current_span("delete_recipe") as span:
            span.set_attribute("recipe.id", recipe_id)
            await self._require_owned(recipe_id, actor_id, "delete")

            comment_ids = select(Comment.comment_id).where(Comment.recipe_id == recipe_id)
            await self._db.execute(
                delete(CommentLike).where(CommentLike.comment_id.in_(comment_ids))
            )
            await self._db.execute(
                delete(Notification).where(
                    or_(
                        Notification.recipe_id == recipe_id,
                        Notification.comment_id.in_(comment_ids),
                    )
                )
            )
            await self._db.execute(
                delete(Comment).where(
                    Comment.recipe_id == recipe_id, Comment.parent_id.is_not(None)
                )
            )
            await self._db.execute(delete(Comment).where(Comment.recipe_id == recipe_id))
            for table in (Rating, RecipeLike, Favorite, RecipeLabel, RecipeIngredient):
                await self._db.execute(delete(table).where(table.recipe_id == recipe_id))
            await self._db.execute(delete(Recipe).where(Recipe.recipe_id == recipe_id))
            await self._db.commit()

        logger.info("Deleted recipe %s", recipe_id)

    # ─────────────────────────── Listings ─────────────────────────────────

    async def _page(self, where: tuple, page: PageRequest) -> Page[Recipe]:
        total = await self._db.scalar(select(func.count()).select_from(Recipe).where(*where))
        rows = await self._db.scalars(
            select(Recipe)
            .where(*where)
            .order_by(Recipe.created_at.desc(), Recipe.recipe_id)
            .offset(page.offset)
            .limit(page.limit)
        )
        return Page(items=list(rows.all()), pagination=Pagination.build(page, total or 0))

    async def list_my_recipes(self, author_id: str, page: PageRequest) -> Page[Recipe]:
        """Drafts included."""
        return await self._page((Recipe.author_id == author_id,), page)

    async def list_user_recipes(self, user_id: str, page: PageRequest) -> Page[Recipe]:
        await require_user(self._db, user_id)
        return await self._page(
            (
                Recipe.author_id == user_id,
                Recipe.is_published.is_(True),
                Recipe.is_public.is_(True),
            ),
            page,
        )

    async def author_stats(self, author_id: str) -> AuthorStats:
        total, published, views = (
            await self._db.execute(
                select(
                    func.count(),
                    func.coalesce(func.sum(case((Recipe.is_published.is_(True), 1), else_=0)), 0),
                    func.coalesce(func.sum(Recipe.views), 0),
                ).where(Recipe.author_id == author_id)
            )
        ).one()

        likes = await self._db.scalar(
            select(func.count())
            .select_from(RecipeLike)
            .join(Recipe, Recipe.recipe_id == RecipeLike.recipe_id)
            .where(Recipe.author_id == author_id)
        )

        per_recipe = (
            await self._db.execute(
                select(func.sum(Rating.value), func.count())
                .join(Recipe, Recipe.recipe_id == Rating.recipe_id)
                .where(Recipe.author_id == author_id)
                .group_by(Rating.recipe_id)
            )
        ).all()
        means = [float(s) / n for s, n in per_recipe if n]

        return AuthorStats(
            total_recipes=total or 0,
            published_recipes=int(published or 0),
            total_views=int(views or 0),
            total_likes=likes or 0,
            total_ratings=sum(n for _, n in per_recipe),
            average_rating=round1(sum(means) / len(means)) if means else 0,
        )

    # ─────────────────────────── Sharing ──────────────────────────────────

    async def share(
        self,
        recipe_id: str,
        sharer_id: str,
        method: str,
        email: Optional[str] = None,
        message: Optional[str] = None,
    ) -> ShareResult:
        if method not in SHARE_METHODS:
            raise ValidationError("Invalid share method")
        recipe = await require_visible_recipe(self._db, recipe_id, sharer_id)
        link = share_link(recipe_id)
        if method == "link":
            return ShareResult(method=method, share_link=link)

        if not email:
            raise ValidationError("Email is required for email sharing")
        sharer = await require_user(self._db, sharer_id)
        sender = sharer.display_name or sharer.username

        try:
            await publish_share_email(
                email,
                f"{sender} shared a recipe with you: {recipe.title}",
                _share_email_html(recipe, sender, message),
            )
        except Exception as exc:
            SHARE_EMAILS_FAILED_TOTAL.inc()
            logger.warning("Share email for recipe %s not queued: %s", recipe_id, exc)
            return ShareResult(method=method, share_link=link, email_queued=False)

        return ShareResult(method=method, share_link=link, email_queued=True)

