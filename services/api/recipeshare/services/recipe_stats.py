"""Batch read-time aggregates for recipe listings (ratings, likes, comments)."""
from dataclasses import dataclass

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.models import Comment, Rating, RecipeLike
from recipeshare.services.lookups import average_rating


@dataclass
class RecipeStats:
    average_rating: float = 0
    ratings_count: int = 0
    likes_count: int = 0
    comments_count: int = 0


async def stats_for(db: AsyncSession, recipe_ids: list[str]) -> dict[str, RecipeStats]:
    """One grouped query per aggregate, however many recipes are on the page."""
    stats = {recipe_id: RecipeStats() for recipe_id in recipe_ids}
    if not recipe_ids:
        return stats

    ratings = await db.execute(
        select(Rating.recipe_id, func.sum(Rating.value), func.count())
        .where(Rating.recipe_id.in_(recipe_ids))
        .group_by(Rating.recipe_id)
    )
    for recipe_id, total, count in ratings.all():
        stats[recipe_id].average_rating = average_rating(total, count)
        stats[recipe_id].ratings_count = count

    likes = await db.execute(
        select(RecipeLike.recipe_id, func.count())
        .where(RecipeLike.recipe_id.in_(recipe_ids))
        .group_by(RecipeLike.recipe_id)
    )
    for recipe_id, count in likes.all():
        stats[recipe_id].likes_count = count

    comments = await db.execute(
        select(Comment.recipe_id, func.count())
        .where(Comment.recipe_id.in_(recipe_ids))
        .group_by(Comment.recipe_id)
    )
    for recipe_id, count in comments.all():
        stats[recipe_id].comments_count = count

    return stats
