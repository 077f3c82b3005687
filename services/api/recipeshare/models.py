"""
SQLAlchemy ORM models for the entity store.

Tables:
  users              — user profiles
  follows            — social graph edges (follower → followee)
  favorites          — user × recipe favorite set
  recipes            — recipe metadata, classification and counters
  recipe_ingredients — ordered ingredient list per recipe
  recipe_labels      — meal types, dietary tags and free tags per recipe
  ratings            — one rating per user × recipe
  recipe_likes       — user × recipe like set
  comments           — threaded comments (root + one level of replies)
  comment_likes      — user × comment like set
  notifications      — per-recipient activity records (30-day window)

Every set membership is a row keyed by the pair it relates, so the
primary key is the uniqueness guarantee for add-to-set operations.
"""
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    event,
    inspect,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.orm import Mapped, mapped_column, relationship

from recipeshare.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    # naive UTC, matching the DATETIME columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


# MySQL DATETIME drops sub-second precision unless asked for it; ordering
# notifications and comments newest-first relies on it.
Timestamp = DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql")


class Difficulty(str, Enum):
    EASY = "Easy"
    MEDIUM = "Medium"
    HARD = "Hard"


class NotificationType(str, Enum):
    LIKE = "like"
    COMMENT = "comment"
    REPLY = "reply"
    RATING = "rating"
    FOLLOW = "follow"


class LabelAxis(str, Enum):
    MEAL_TYPE = "meal_type"
    DIETARY = "dietary"
    TAG = "tag"


CUISINE_TYPES = (
    "Italian", "Mexican", "Chinese", "Indian", "Japanese", "Thai",
    "French", "Greek", "Spanish", "Korean", "Vietnamese", "Lebanese",
    "German", "American", "British", "Mediterranean", "Other",
)

MEAL_TYPES = (
    "Breakfast", "Lunch", "Dinner", "Snack", "Appetizer", "Dessert", "Beverage",
)

DIETARY_RESTRICTIONS = (
    "Vegetarian", "Vegan", "Gluten-Free", "Dairy-Free", "Nut-Free",
    "Soy-Free", "Keto", "Paleo", "Low-Carb", "Low-Fat", "Halal", "Kosher",
)


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(30), unique=True, nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255))
    display_name: Mapped[Optional[str]] = mapped_column(String(255))
    bio: Mapped[Optional[str]] = mapped_column(String(500))
    # Opaque storage path handed over by the upload layer
    profile_picture: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)


class Follow(Base):
    __tablename__ = "follows"

    follower_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    followee_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)

    __table_args__ = (
        # "who follows user X?"
        Index("idx_followee", "followee_id"),
    )


class Favorite(Base):
    __tablename__ = "favorites"

    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_favorites_recipe", "recipe_id"),)


class Recipe(Base):
    __tablename__ = "recipes"

    recipe_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)

    cuisine_type: Mapped[str] = mapped_column(String(30), nullable=False)
    difficulty: Mapped[str] = mapped_column(
        String(10), nullable=False, default=Difficulty.MEDIUM.value
    )

    prep_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cook_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    servings: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # list[{step, description, image?, duration?}] — steps numbered 1..n
    instructions: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    images: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    featured_image: Mapped[Optional[str]] = mapped_column(String(500))
    nutrition: Mapped[Optional[dict]] = mapped_column(JSON)
    source: Mapped[Optional[str]] = mapped_column(String(200))

    views: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    published_at: Mapped[Optional[datetime]] = mapped_column(Timestamp)
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    ingredients = relationship(
        "RecipeIngredient",
        order_by="RecipeIngredient.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    labels = relationship(
        "RecipeLabel",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        Index("idx_recipes_author", "author_id", "created_at"),
        Index("idx_recipes_visibility", "is_published", "is_public"),
        Index("idx_recipes_cuisine", "cuisine_type"),
        Index("idx_recipes_created", "created_at"),
    )

    @property
    def total_time(self) -> int:
        return (self.prep_time or 0) + (self.cook_time or 0)

    def labels_for(self, axis: LabelAxis) -> list[str]:
        return sorted(label.value for label in self.labels if label.axis == axis.value)


class RecipeIngredient(Base):
    __tablename__ = "recipe_ingredients"

    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), primary_key=True
    )
    position: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    unit: Mapped[str] = mapped_column(String(30), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(String(200))


class RecipeLabel(Base):
    __tablename__ = "recipe_labels"

    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), primary_key=True
    )
    axis: Mapped[str] = mapped_column(String(20), primary_key=True)
    value: Mapped[str] = mapped_column(String(50), primary_key=True)

    __table_args__ = (Index("idx_labels_axis_value", "axis", "value"),)


class Rating(Base):
    __tablename__ = "ratings"

    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    value: Mapped[int] = mapped_column(Integer, nullable=False)
    review: Mapped[Optional[str]] = mapped_column(String(500))
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)
    # Overwritten in place whenever the user re-rates
    rated_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)


class RecipeLike(Base):
    __tablename__ = "recipe_likes"

    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)


class Comment(Base):
    __tablename__ = "comments"

    comment_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    recipe_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("recipes.recipe_id"), nullable=False
    )
    author_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), nullable=False
    )
    # NULL for a root comment; otherwise the id of a root comment
    parent_id: Mapped[Optional[str]] = mapped_column(
        String(36), ForeignKey("comments.comment_id")
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    edited_at: Mapped[Optional[datetime]] = mapped_column(Timestamp)
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        Timestamp, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        Index("idx_comments_recipe", "recipe_id", "created_at"),
        Index("idx_comments_parent", "parent_id"),
        Index("idx_comments_author", "author_id"),
    )

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


@event.listens_for(Comment, "before_update")
def _mark_comment_edited(mapper, connection, target: Comment) -> None:
    if inspect(target).attrs.content.history.has_changes():
        target.is_edited = True
        target.edited_at = utcnow()


class CommentLike(Base):
    __tablename__ = "comment_likes"

    comment_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("comments.comment_id"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("users.user_id"), primary_key=True
    )
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)


class Notification(Base):
    __tablename__ = "notifications"

    notification_id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=_uuid
    )
    recipient_id: Mapped[str] = mapped_column(String(36), nullable=False)
    sender_id: Mapped[str] = mapped_column(String(36), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(100), nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    # Loose references; the recipe / comment cascades remove these rows
    recipe_id: Mapped[Optional[str]] = mapped_column(String(36))
    comment_id: Mapped[Optional[str]] = mapped_column(String(36))
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(Timestamp)
    created_at: Mapped[datetime] = mapped_column(Timestamp, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_notifications_recipient", "recipient_id", "created_at"),
        Index("idx_notifications_unread", "recipient_id", "is_read"),
        Index("idx_notifications_created", "created_at"),
    )
