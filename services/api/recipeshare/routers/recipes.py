"""
Recipe endpoints:
  GET    /recipes/search          — filtered, sorted, paginated discovery
  GET    /recipes/categories      — distinct classification values
  GET    /recipes/featured        — featured recipes
  GET    /recipes/popular         — best rated / most liked / most viewed
  GET    /recipes/cuisine/{x} | /meal/{x} | /dietary/{x} | /tag/{x}
                                  — browse one category, newest first
  GET    /recipes/mine            — the caller's recipes, drafts included
  GET    /recipes/stats           — the caller's author statistics
  POST   /recipes                 — create
  GET    /recipes/{id}            — fetch (counts a view)
  PUT    /recipes/{id}            — partial update (author only)
  DELETE /recipes/{id}            — delete with cascade (author only)
  POST   /recipes/{id}/publish | /unpublish
  POST   /recipes/{id}/rate       — rate 1..5 (re-rating overwrites)
  DELETE /recipes/{id}/rate       — withdraw the caller's rating
  POST   /recipes/{id}/like       — toggle like
  GET    /recipes/{id}/likes      — who liked it
  POST   /recipes/{id}/views      — bump the view counter
  POST   /recipes/{id}/share      — link or email
  POST   /recipes/{id}/favorite   — add to favorites
  DELETE /recipes/{id}/favorite   — remove from favorites
  GET    /recipes/{id}/comments   — comment threads
  POST   /recipes/{id}/comments   — comment or reply
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.config import settings
from recipeshare.database import get_db
from recipeshare.deps import (
    get_comment_service,
    get_current_user_id,
    get_discovery_service,
    get_engagement_service,
    get_optional_user_id,
    get_recipe_service,
    get_social_service,
)
from recipeshare.models import Recipe
from recipeshare.pagination import PageRequest
from recipeshare.schemas import (
    AuthorStatsOut,
    CategoriesOut,
    CommentIn,
    CommentOut,
    LikeStateOut,
    RatingIn,
    RatingSummaryOut,
    RecipeCreate,
    RecipeOut,
    RecipeUpdate,
    ShareIn,
    UserSummary,
    envelope,
)
from recipeshare.services.comment_service import CommentService
from recipeshare.services.discovery_service import (
    Category,
    DiscoveryService,
    SearchQuery,
    SortKey,
    SortOrder,
)
from recipeshare.services.engagement_service import EngagementService
from recipeshare.services.recipe_service import RecipeService
from recipeshare.services.recipe_stats import stats_for
from recipeshare.services.social_service import SocialGraphService

logger = logging.getLogger(__name__)
router = APIRouter()


def _csv(value: Optional[str]) -> list[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


async def _recipe_out(db: AsyncSession, recipe: Recipe) -> RecipeOut:
    stats = await stats_for(db, [recipe.recipe_id])
    return RecipeOut.build(recipe, stats[recipe.recipe_id])


async def _recipes_out(db: AsyncSession, recipes: list[Recipe]) -> list[RecipeOut]:
    stats = await stats_for(db, [r.recipe_id for r in recipes])
    return [RecipeOut.build(r, stats[r.recipe_id]) for r in recipes]


# ─────────────────────────── Discovery ────────────────────────────────────

@router.get("/search")
async def search_recipes(
    keyword: Optional[str] = Query(None, alias="q"),
    ingredients: Optional[str] = Query(None, description="Comma-separated"),
    cuisine_type: Optional[str] = Query(None, alias="cuisineType"),
    difficulty: Optional[str] = None,
    meal_types: Optional[str] = Query(None, alias="mealTypes"),
    dietary_restrictions: Optional[str] = Query(None, alias="dietaryRestrictions"),
    tags: Optional[str] = None,
    max_time: Optional[int] = Query(None, alias="maxTime", ge=0),
    sort_by: SortKey = Query(SortKey.NEWEST, alias="sortBy"),
    sort_order: Optional[SortOrder] = Query(None, alias="sortOrder"),
    page: Optional[int] = None,
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    query = SearchQuery(
        keyword=keyword,
        ingredients=_csv(ingredients),
        cuisine_type=cuisine_type,
        difficulty=difficulty,
        meal_types=_csv(meal_types),
        dietary_restrictions=_csv(dietary_restrictions),
        tags=_csv(tags),
        max_total_time=max_time,
        sort=sort_by,
        order=sort_order,
    )
    result = await discovery.search(query, PageRequest.of(page, limit))
    return envelope(
        data={"recipes": await _recipes_out(db, result.items)},
        pagination=result.pagination,
    )


@router.get("/categories")
async def get_categories(discovery: DiscoveryService = Depends(get_discovery_service)):
    categories = await discovery.categories()
    return envelope(data=CategoriesOut.model_validate(categories))


@router.get("/featured")
async def featured_recipes(
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    recipes = await discovery.featured(limit)
    return envelope(data={"recipes": await _recipes_out(db, recipes)})


@router.get("/popular")
async def popular_recipes(
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    recipes = await discovery.popular(limit)
    return envelope(data={"recipes": await _recipes_out(db, recipes)})


async def _browse(
    discovery: DiscoveryService,
    db: AsyncSession,
    category: Category,
    key: str,
    value: str,
    page: Optional[int],
    limit: Optional[int],
):
    result = await discovery.browse(category, value, PageRequest.of(page, limit))
    return envelope(
        data={"recipes": await _recipes_out(db, result.items), key: value},
        pagination=result.pagination,
    )


@router.get("/cuisine/{cuisine_type}")
async def recipes_by_cuisine(
    cuisine_type: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    return await _browse(
        discovery, db, Category.CUISINE, "cuisineType", cuisine_type, page, limit
    )


@router.get("/meal/{meal_type}")
async def recipes_by_meal_type(
    meal_type: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    return await _browse(discovery, db, Category.MEAL_TYPE, "mealType", meal_type, page, limit)


@router.get("/dietary/{dietary}")
async def recipes_by_dietary(
    dietary: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    return await _browse(
        discovery, db, Category.DIETARY, "dietaryRestriction", dietary, page, limit
    )


@router.get("/tag/{tag}")
async def recipes_by_tag(
    tag: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    discovery: DiscoveryService = Depends(get_discovery_service),
    db: AsyncSession = Depends(get_db),
):
    return await _browse(discovery, db, Category.TAG, "tag", tag, page, limit)


# ─────────────────────────── Authoring ────────────────────────────────────

@router.get("/mine")
async def my_recipes(
    page: Optional[int] = None,
    limit: Optional[int] = None,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    result = await recipes.list_my_recipes(user_id, PageRequest.of(page, limit))
    return envelope(
        data={"recipes": await _recipes_out(db, result.items)},
        pagination=result.pagination,
    )


@router.get("/stats")
async def my_stats(
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
):
    stats = await recipes.author_stats(user_id)
    return envelope(data=AuthorStatsOut.model_validate(stats))


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_recipe(
    body: RecipeCreate,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    recipe = await recipes.create_recipe(user_id, body.model_dump(mode="json"))
    return envelope(
        data={"recipe": await _recipe_out(db, recipe)},
        message="Recipe created successfully",
    )


@router.get("/{recipe_id}")
async def get_recipe(
    recipe_id: str,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    recipe = await recipes.get_recipe(recipe_id, viewer_id)
    return envelope(data={"recipe": await _recipe_out(db, recipe)})


@router.put("/{recipe_id}")
async def update_recipe(
    recipe_id: str,
    body: RecipeUpdate,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(mode="json", exclude_unset=True, exclude_none=True)
    recipe = await recipes.update_recipe(recipe_id, user_id, changes)
    return envelope(
        data={"recipe": await _recipe_out(db, recipe)},
        message="Recipe updated successfully",
    )


@router.delete("/{recipe_id}")
async def delete_recipe(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
):
    await recipes.delete_recipe(recipe_id, user_id)
    return envelope(message="Recipe deleted successfully")


@router.post("/{recipe_id}/publish")
async def publish_recipe(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    recipe = await recipes.publish(recipe_id, user_id)
    return envelope(
        data={"recipe": await _recipe_out(db, recipe)},
        message="Recipe published successfully",
    )


@router.post("/{recipe_id}/unpublish")
async def unpublish_recipe(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    recipe = await recipes.unpublish(recipe_id, user_id)
    return envelope(
        data={"recipe": await _recipe_out(db, recipe)},
        message="Recipe unpublished successfully",
    )


# ─────────────────────────── Engagement ───────────────────────────────────

@router.post("/{recipe_id}/rate")
async def rate_recipe(
    recipe_id: str,
    body: RatingIn,
    user_id: str = Depends(get_current_user_id),
    engagement: EngagementService = Depends(get_engagement_service),
):
    summary = await engagement.rate(recipe_id, user_id, body.rating, body.review)
    return envelope(
        data=RatingSummaryOut.model_validate(summary),
        message="Recipe rated successfully",
    )


@router.delete("/{recipe_id}/rate")
async def remove_rating(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    engagement: EngagementService = Depends(get_engagement_service),
):
    summary = await engagement.remove_rating(recipe_id, user_id)
    return envelope(
        data=RatingSummaryOut.model_validate(summary),
        message="Rating removed successfully",
    )


@router.post("/{recipe_id}/like")
async def toggle_like(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    engagement: EngagementService = Depends(get_engagement_service),
):
    state = await engagement.toggle_like(recipe_id, user_id)
    return envelope(
        data=LikeStateOut.model_validate(state),
        message="Recipe liked" if state.is_liked else "Recipe unliked",
    )


@router.get("/{recipe_id}/likes")
async def list_likes(
    recipe_id: str,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    engagement: EngagementService = Depends(get_engagement_service),
):
    users = await engagement.list_likes(recipe_id, viewer_id)
    return envelope(
        data={
            "likes": [UserSummary.model_validate(u) for u in users],
            "likesCount": len(users),
        }
    )


@router.post("/{recipe_id}/views", status_code=status.HTTP_204_NO_CONTENT)
async def increment_views(
    recipe_id: str,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    engagement: EngagementService = Depends(get_engagement_service),
):
    await engagement.increment_views(recipe_id, viewer_id)


@router.post("/{recipe_id}/share")
async def share_recipe(
    recipe_id: str,
    body: ShareIn,
    user_id: str = Depends(get_current_user_id),
    recipes: RecipeService = Depends(get_recipe_service),
):
    result = await recipes.share(recipe_id, user_id, body.method, body.email, body.message)
    if result.method == "link":
        return envelope(data={"shareLink": result.share_link})
    return envelope(
        data={"shareLink": result.share_link},
        message="Recipe shared via email successfully",
    )


# ─────────────────────────── Favorites ────────────────────────────────────

@router.post("/{recipe_id}/favorite")
async def add_favorite(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    social: SocialGraphService = Depends(get_social_service),
):
    await social.add_favorite(user_id, recipe_id)
    return envelope(message="Recipe added to favorites")


@router.delete("/{recipe_id}/favorite")
async def remove_favorite(
    recipe_id: str,
    user_id: str = Depends(get_current_user_id),
    social: SocialGraphService = Depends(get_social_service),
):
    await social.remove_favorite(user_id, recipe_id)
    return envelope(message="Recipe removed from favorites")


# ─────────────────────────── Comments ─────────────────────────────────────

@router.get("/{recipe_id}/comments")
async def list_comments(
    recipe_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    result = await comments.list_recipe_comments(
        recipe_id, PageRequest.of(page, limit, settings.social_page_size), viewer_id
    )
    return envelope(
        data={"comments": [CommentOut.from_view(view) for view in result.items]},
        pagination=result.pagination,
    )


@router.post("/{recipe_id}/comments", status_code=status.HTTP_201_CREATED)
async def add_comment(
    recipe_id: str,
    body: CommentIn,
    user_id: str = Depends(get_current_user_id),
    comments: CommentService = Depends(get_comment_service),
):
    comment = await comments.add_comment(recipe_id, user_id, body.content, body.parent_comment)
    logger.debug("Comment %s added to recipe %s", comment.comment_id, recipe_id)
    return envelope(
        data={"comment": CommentOut.build(comment)},
        message="Comment added successfully",
    )
