"""
Pydantic request / response schemas for the API layer.
Kept separate from ORM models to avoid coupling transport to storage.

Every response is wrapped by `envelope()`:
  { status: "success" | "error", data?, message?, pagination? }
with camelCase keys on the wire.
"""
from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from recipeshare.models import (
    CUISINE_TYPES,
    DIETARY_RESTRICTIONS,
    MEAL_TYPES,
    Difficulty,
    LabelAxis,
    Recipe,
)
from recipeshare.pagination import Pagination


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


def _check_members(values: Optional[list[str]], allowed: tuple[str, ...], what: str):
    for value in values or []:
        if value not in allowed:
            raise ValueError(f"Unknown {what}: {value}")
    return values


# ──────────────────────────── Recipes (in) ────────────────────────────────

class IngredientIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., ge=0)
    unit: str = Field(..., min_length=1, max_length=30)
    notes: Optional[str] = Field(None, max_length=200)


class InstructionIn(CamelModel):
    step: int = Field(..., ge=1)
    description: str = Field(..., min_length=1, max_length=1000)
    image: Optional[str] = None
    duration: Optional[int] = Field(None, ge=0)


class NutritionIn(CamelModel):
    calories: Optional[float] = Field(None, ge=0)
    protein: Optional[float] = Field(None, ge=0)
    carbohydrates: Optional[float] = Field(None, ge=0)
    fat: Optional[float] = Field(None, ge=0)
    fiber: Optional[float] = Field(None, ge=0)
    sugar: Optional[float] = Field(None, ge=0)
    sodium: Optional[float] = Field(None, ge=0)
    serving_size: Optional[str] = None


class RecipeUpdate(CamelModel):
    title: Optional[str] = Field(None, min_length=3, max_length=100)
    description: Optional[str] = Field(None, min_length=10, max_length=1000)
    ingredients: Optional[list[IngredientIn]] = Field(None, min_length=1)
    instructions: Optional[list[InstructionIn]] = Field(None, min_length=1)
    # Final storage paths from the upload layer
    images: Optional[list[str]] = None
    featured_image: Optional[str] = None
    cuisine_type: Optional[str] = None
    meal_types: Optional[list[str]] = None
    dietary_restrictions: Optional[list[str]] = None
    tags: Optional[list[str]] = None
    difficulty: Optional[Difficulty] = None
    prep_time: Optional[int] = Field(None, ge=0)
    cook_time: Optional[int] = Field(None, ge=0)
    servings: Optional[int] = Field(None, ge=1, le=50)
    nutrition: Optional[NutritionIn] = None
    source: Optional[str] = Field(None, max_length=200)
    is_public: Optional[bool] = None
    is_published: Optional[bool] = None

    @field_validator("cuisine_type")
    @classmethod
    def _cuisine(cls, v):
        if v is not None and v not in CUISINE_TYPES:
            raise ValueError(f"Unknown cuisine type: {v}")
        return v

    @field_validator("meal_types")
    @classmethod
    def _meal_types(cls, v):
        return _check_members(v, MEAL_TYPES, "meal type")

    @field_validator("dietary_restrictions")
    @classmethod
    def _dietary(cls, v):
        return _check_members(v, DIETARY_RESTRICTIONS, "dietary restriction")

    @field_validator("tags")
    @classmethod
    def _tags(cls, v):
        for tag in v or []:
            if len(tag) > 50:
                raise ValueError("Tag cannot exceed 50 characters")
        return v


class RecipeCreate(RecipeUpdate):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=10, max_length=1000)
    ingredients: list[IngredientIn] = Field(..., min_length=1)
    instructions: list[InstructionIn] = Field(..., min_length=1)
    images: list[str] = Field(default_factory=list)
    cuisine_type: str
    meal_types: list[str] = Field(default_factory=list)
    dietary_restrictions: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    difficulty: Difficulty = Difficulty.MEDIUM
    prep_time: int = Field(..., ge=0)
    cook_time: int = Field(..., ge=0)
    servings: int = Field(..., ge=1, le=50)
    is_public: bool = True
    is_published: bool = False


class RatingIn(CamelModel):
    rating: int = Field(..., ge=1, le=5)
    review: Optional[str] = Field(None, max_length=500)


class ShareIn(CamelModel):
    method: Literal["email", "link"]
    email: Optional[str] = None
    message: Optional[str] = Field(None, max_length=500)


# ──────────────────────────── Comments (in) ───────────────────────────────

class CommentIn(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000)
    parent_comment: Optional[str] = None


class CommentUpdate(CamelModel):
    content: str = Field(..., min_length=1, max_length=1000)


# ──────────────────────────── Users (out) ─────────────────────────────────

class UserSummary(CamelModel):
    user_id: str
    username: str
    display_name: Optional[str] = None
    profile_picture: Optional[str] = None


class UserProfile(UserSummary):
    bio: Optional[str] = None
    created_at: datetime
    followers_count: int
    following_count: int
    recipes_count: int


class FollowStateOut(CamelModel):
    is_following: bool
    followers_count: int
    following_count: int


# ──────────────────────────── Recipes (out) ───────────────────────────────

class IngredientOut(CamelModel):
    name: str
    amount: float
    unit: str
    notes: Optional[str] = None


class RecipeOut(CamelModel):
    recipe_id: str
    author_id: str
    title: str
    description: str
    ingredients: list[IngredientOut]
    instructions: list[dict]
    images: list[str]
    featured_image: Optional[str] = None
    cuisine_type: str
    meal_types: list[str]
    dietary_restrictions: list[str]
    tags: list[str]
    difficulty: str
    prep_time: int
    cook_time: int
    total_time: int
    servings: int
    nutrition: Optional[dict] = None
    source: Optional[str] = None
    views: int
    is_public: bool
    is_published: bool
    is_featured: bool
    published_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime
    # Derived at read time, never stored
    average_rating: float = 0
    ratings_count: int = 0
    likes_count: int = 0
    comments_count: int = 0

    @classmethod
    def build(cls, recipe: Recipe, stats: Any = None) -> "RecipeOut":
        return cls(
            recipe_id=recipe.recipe_id,
            author_id=recipe.author_id,
            title=recipe.title,
            description=recipe.description,
            ingredients=[IngredientOut.model_validate(i) for i in recipe.ingredients],
            instructions=list(recipe.instructions or []),
            images=list(recipe.images or []),
            featured_image=recipe.featured_image,
            cuisine_type=recipe.cuisine_type,
            meal_types=recipe.labels_for(LabelAxis.MEAL_TYPE),
            dietary_restrictions=recipe.labels_for(LabelAxis.DIETARY),
            tags=recipe.labels_for(LabelAxis.TAG),
            difficulty=recipe.difficulty,
            prep_time=recipe.prep_time,
            cook_time=recipe.cook_time,
            total_time=recipe.total_time,
            servings=recipe.servings,
            nutrition=recipe.nutrition,
            source=recipe.source,
            views=recipe.views,
            is_public=recipe.is_public,
            is_published=recipe.is_published,
            is_featured=recipe.is_featured,
            published_at=recipe.published_at,
            created_at=recipe.created_at,
            updated_at=recipe.updated_at,
            average_rating=getattr(stats, "average_rating", 0),
            ratings_count=getattr(stats, "ratings_count", 0),
            likes_count=getattr(stats, "likes_count", 0),
            comments_count=getattr(stats, "comments_count", 0),
        )


class RatingSummaryOut(CamelModel):
    average_rating: float
    ratings_count: int


class LikeStateOut(CamelModel):
    is_liked: bool
    likes_count: int


class CategoriesOut(CamelModel):
    cuisine_types: list[str]
    meal_types: list[str]
    dietary_restrictions: list[str]
    tags: list[str]
    difficulties: list[str]


class AuthorStatsOut(CamelModel):
    total_recipes: int
    published_recipes: int
    total_views: int
    total_likes: int
    total_ratings: int
    average_rating: float


# ──────────────────────────── Comments (out) ──────────────────────────────

class CommentOut(CamelModel):
    comment_id: str
    recipe_id: str
    author_id: str
    parent_comment: Optional[str] = None
    content: str
    is_edited: bool
    edited_at: Optional[datetime] = None
    created_at: datetime
    likes_count: int = 0
    replies: list["CommentOut"] = Field(default_factory=list)

    @classmethod
    def build(cls, comment, likes_count: int = 0, replies=()) -> "CommentOut":
        return cls(
            comment_id=comment.comment_id,
            recipe_id=comment.recipe_id,
            author_id=comment.author_id,
            parent_comment=comment.parent_id,
            content=comment.content,
            is_edited=comment.is_edited,
            edited_at=comment.edited_at,
            created_at=comment.created_at,
            likes_count=likes_count,
            replies=list(replies),
        )

    @classmethod
    def from_view(cls, view) -> "CommentOut":
        return cls.build(
            view.comment,
            view.likes_count,
            [cls.from_view(reply) for reply in view.replies],
        )


# ──────────────────────────── Notifications (out) ─────────────────────────

class NotificationOut(CamelModel):
    notification_id: str
    recipient_id: str
    sender_id: str
    type: str
    title: str
    message: str
    recipe_id: Optional[str] = None
    comment_id: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime


# ──────────────────────────── Envelope ────────────────────────────────────

class PaginationOut(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool


def _dump(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True)
    if isinstance(value, (list, tuple)):
        return [_dump(v) for v in value]
    if isinstance(value, dict):
        return {k: _dump(v) for k, v in value.items()}
    return value


def envelope(
    data: Any = None,
    message: Optional[str] = None,
    pagination: Optional[Pagination] = None,
    status: str = "success",
) -> dict:
    body: dict[str, Any] = {"status": status}
    if data is not None:
        body["data"] = _dump(data)
    if message:
        body["message"] = message
    if pagination is not None:
        body["pagination"] = _dump(PaginationOut.model_validate(pagination))
    return body
