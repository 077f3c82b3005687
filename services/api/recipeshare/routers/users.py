"""
User / social graph endpoints:
  GET    /users/search?q=       — find users by username or display name
  GET    /users/{id}            — profile with follower / following / recipe counts
  POST   /users/{id}/follow     — follow
  DELETE /users/{id}/follow     — unfollow
  GET    /users/{id}/followers  — who follows them
  GET    /users/{id}/following  — who they follow
  GET    /users/{id}/favorites  — their favorite recipes
  GET    /users/{id}/recipes    — their published, public recipes
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.config import settings
from recipeshare.database import get_db
from recipeshare.deps import (
    get_current_user_id,
    get_optional_user_id,
    get_recipe_service,
    get_social_service,
)
from recipeshare.pagination import PageRequest
from recipeshare.schemas import FollowStateOut, RecipeOut, UserProfile, UserSummary, envelope
from recipeshare.services.recipe_service import RecipeService
from recipeshare.services.recipe_stats import stats_for
from recipeshare.services.social_service import SocialGraphService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/search")
async def search_users(
    q: str = "",
    page: Optional[int] = None,
    limit: Optional[int] = None,
    social: SocialGraphService = Depends(get_social_service),
):
    result = await social.search_users(q, PageRequest.of(page, limit))
    return envelope(
        data={"users": [UserSummary.model_validate(u) for u in result.items]},
        pagination=result.pagination,
    )


@router.get("/{user_id}")
async def get_profile(
    user_id: str,
    viewer_id: Optional[str] = Depends(get_optional_user_id),
    social: SocialGraphService = Depends(get_social_service),
):
    profile = await social.get_profile(user_id)
    user = profile.user
    data = {
        "user": UserProfile(
            user_id=user.user_id,
            username=user.username,
            display_name=user.display_name,
            profile_picture=user.profile_picture,
            bio=user.bio,
            created_at=user.created_at,
            followers_count=profile.followers_count,
            following_count=profile.following_count,
            recipes_count=profile.recipes_count,
        )
    }
    if viewer_id and viewer_id != user_id:
        data["isFollowing"] = await social.is_following(viewer_id, user_id)
    return envelope(data=data)


@router.post("/{user_id}/follow")
async def follow_user(
    user_id: str,
    follower_id: str = Depends(get_current_user_id),
    social: SocialGraphService = Depends(get_social_service),
):
    state = await social.follow(follower_id, user_id)
    return envelope(
        data=FollowStateOut.model_validate(state),
        message="User followed successfully",
    )


@router.delete("/{user_id}/follow")
async def unfollow_user(
    user_id: str,
    follower_id: str = Depends(get_current_user_id),
    social: SocialGraphService = Depends(get_social_service),
):
    state = await social.unfollow(follower_id, user_id)
    return envelope(
        data=FollowStateOut.model_validate(state),
        message="User unfollowed successfully",
    )


@router.get("/{user_id}/followers")
async def list_followers(
    user_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    social: SocialGraphService = Depends(get_social_service),
):
    result = await social.list_followers(
        user_id, PageRequest.of(page, limit, settings.social_page_size)
    )
    return envelope(
        data={"followers": [UserSummary.model_validate(u) for u in result.items]},
        pagination=result.pagination,
    )


@router.get("/{user_id}/following")
async def list_following(
    user_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    social: SocialGraphService = Depends(get_social_service),
):
    result = await social.list_following(
        user_id, PageRequest.of(page, limit, settings.social_page_size)
    )
    return envelope(
        data={"following": [UserSummary.model_validate(u) for u in result.items]},
        pagination=result.pagination,
    )


@router.get("/{user_id}/favorites")
async def list_favorites(
    user_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    social: SocialGraphService = Depends(get_social_service),
    db: AsyncSession = Depends(get_db),
):
    result = await social.list_favorites(user_id, PageRequest.of(page, limit))
    stats = await stats_for(db, [r.recipe_id for r in result.items])
    return envelope(
        data={"recipes": [RecipeOut.build(r, stats[r.recipe_id]) for r in result.items]},
        pagination=result.pagination,
    )


@router.get("/{user_id}/recipes")
async def list_user_recipes(
    user_id: str,
    page: Optional[int] = None,
    limit: Optional[int] = None,
    recipes: RecipeService = Depends(get_recipe_service),
    db: AsyncSession = Depends(get_db),
):
    result = await recipes.list_user_recipes(user_id, PageRequest.of(page, limit))
    stats = await stats_for(db, [r.recipe_id for r in result.items])
    return envelope(
        data={"recipes": [RecipeOut.build(r, stats[r.recipe_id]) for r in result.items]},
        pagination=result.pagination,
    )
