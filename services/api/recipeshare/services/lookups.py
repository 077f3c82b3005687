"""
Fetch-or-raise helpers shared by the service layer, and rating arithmetic.

A recipe that is not both published and public exists only for its author:
every read and engagement path goes through `require_visible_recipe`, and
everyone else gets NotFound, never AuthorizationError, so a guessed id
reveals nothing about a draft.
"""
import math
from typing import Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.errors import NotFoundError
from recipeshare.models import Comment, Recipe, User


async def require_recipe(db: AsyncSession, recipe_id: str) -> Recipe:
    recipe = await db.get(Recipe, recipe_id)
    if recipe is None:
        raise NotFoundError("Recipe", recipe_id)
    return recipe


def is_visible_to(recipe: Recipe, viewer_id: Optional[str]) -> bool:
    if recipe.is_published and recipe.is_public:
        return True
    return viewer_id is not None and viewer_id == recipe.author_id


async def require_visible_recipe(
    db: AsyncSession, recipe_id: str, viewer_id: Optional[str]
) -> Recipe:
    recipe = await require_recipe(db, recipe_id)
    if not is_visible_to(recipe, viewer_id):
        raise NotFoundError("Recipe", recipe_id)
    return recipe


async def require_user(db: AsyncSession, user_id: str) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def require_comment(db: AsyncSession, comment_id: str) -> Comment:
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment", comment_id)
    return comment


def round1(value: float) -> float:
    """Round half up to one decimal place (4.25 → 4.3, unlike round())."""
    return math.floor(value * 10 + 0.5) / 10


def average_rating(total: Optional[float], count: int) -> float:
    if not count:
        return 0
    return round1(float(total or 0) / count)


def mean_of(values: Sequence[int]) -> float:
    return average_rating(sum(values), len(values))
