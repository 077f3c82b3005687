"""
Discovery / search engine.

Turns optional query parameters into one SQL statement:

  filter │ keyword      — title, description or a tag contains it (case-insensitive)
         │ ingredients  — every term is a substring of some ingredient name
         │ cuisine      — exact
         │ difficulty   — exact
         │ meal types   — recipe has any of them
         │ dietary      — recipe has any of them
         │ tags         — recipe has any of them
         │ max time     — prep + cook <= bound
  sort   │ newest | oldest | rating | title | prepTime | cookTime, then recipe_id
  page   │ 1-indexed, limit clamped to [1, max_page_size]

Every query is restricted to published AND public recipes; no filter
combination can lift that restriction. Ratings are averaged at query time
and rounded to one decimal before they are compared.

Browsing one category (cuisine, meal type, dietary restriction or tag)
matches the value case-insensitively and lists newest first.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from opentelemetry import trace
from sqlalchemy import ColumnElement, distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from recipeshare.models import (
    LabelAxis,
    Rating,
    Recipe,
    RecipeIngredient,
    RecipeLabel,
    RecipeLike,
)
from recipeshare.pagination import Page, PageRequest, Pagination

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class SortKey(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    RATING = "rating"
    TITLE = "title"
    PREP_TIME = "prepTime"
    COOK_TIME = "cookTime"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class Category(str, Enum):
    CUISINE = "cuisine"
    MEAL_TYPE = "meal"
    DIETARY = "dietary"
    TAG = "tag"


CATEGORY_AXES = {
    Category.MEAL_TYPE: LabelAxis.MEAL_TYPE,
    Category.DIETARY: LabelAxis.DIETARY,
    Category.TAG: LabelAxis.TAG,
}


DEFAULT_ORDER = {
    SortKey.NEWEST: SortOrder.DESC,
    SortKey.OLDEST: SortOrder.ASC,
    SortKey.RATING: SortOrder.DESC,
    SortKey.TITLE: SortOrder.ASC,
    SortKey.PREP_TIME: SortOrder.ASC,
    SortKey.COOK_TIME: SortOrder.ASC,
}


@dataclass
class SearchQuery:
    keyword: Optional[str] = None
    ingredients: list[str] = field(default_factory=list)
    cuisine_type: Optional[str] = None
    difficulty: Optional[str] = None
    meal_types: list[str] = field(default_factory=list)
    dietary_restrictions: list[str] = field(default_factory=list)
    tags: list[str] = field(default_factory=list)
    max_total_time: Optional[int] = None
    sort: SortKey = SortKey.NEWEST
    order: Optional[SortOrder] = None


@dataclass
class Categories:
    cuisine_types: list[str]
    meal_types: list[str]
    dietary_restrictions: list[str]
    tags: list[str]
    difficulties: list[str]


def _terms(values: Optional[list[str]]) -> list[str]:
    return [v.strip() for v in values or [] if v and v.strip()]


def visible() -> list[ColumnElement[bool]]:
    return [Recipe.is_published.is_(True), Recipe.is_public.is_(True)]


def _has_label(axis: LabelAxis, values: list[str]) -> ColumnElement[bool]:
    return (
        select(RecipeLabel.recipe_id)
        .where(
            RecipeLabel.recipe_id == Recipe.recipe_id,
            RecipeLabel.axis == axis.value,
            RecipeLabel.value.in_(values),
        )
        .exists()
    )


def _has_ingredient(term: str) -> ColumnElement[bool]:
    return (
        select(RecipeIngredient.recipe_id)
        .where(
            RecipeIngredient.recipe_id == Recipe.recipe_id,
            RecipeIngredient.name.icontains(term, autoescape=True),
        )
        .exists()
    )


def _matches_keyword(keyword: str) -> ColumnElement[bool]:
    tag_hit = (
        select(RecipeLabel.recipe_id)
        .where(
            RecipeLabel.recipe_id == Recipe.recipe_id,
            RecipeLabel.axis == LabelAxis.TAG.value,
            RecipeLabel.value.icontains(keyword, autoescape=True),
        )
        .exists()
    )
    return or_(
        Recipe.title.icontains(keyword, autoescape=True),
        Recipe.description.icontains(keyword, autoescape=True),
        tag_hit,
    )


def in_category(category: Category, value: str) -> ColumnElement[bool]:
    value = value.strip().lower()
    if category == Category.CUISINE:
        return func.lower(Recipe.cuisine_type) == value
    return (
        select(RecipeLabel.recipe_id)
        .where(
            RecipeLabel.recipe_id == Recipe.recipe_id,
            RecipeLabel.axis == CATEGORY_AXES[category].value,
            func.lower(RecipeLabel.value) == value,
        )
        .exists()
    )


def build_filter(query: SearchQuery) -> list[ColumnElement[bool]]:
    conditions = visible()

    keyword = (query.keyword or "").strip()
    if keyword:
        conditions.append(_matches_keyword(keyword))

    for term in _terms(query.ingredients):
        conditions.append(_has_ingredient(term))

    if query.cuisine_type:
        conditions.append(Recipe.cuisine_type == query.cuisine_type)
    if query.difficulty:
        conditions.append(Recipe.difficulty == query.difficulty)

    meal_types = _terms(query.meal_types)
    if meal_types:
        conditions.append(_has_label(LabelAxis.MEAL_TYPE, meal_types))
    dietary = _terms(query.dietary_restrictions)
    if dietary:
        conditions.append(_has_label(LabelAxis.DIETARY, dietary))
    tags = _terms(query.tags)
    if tags:
        conditions.append(_has_label(LabelAxis.TAG, tags))

    if query.max_total_time is not None:
        conditions.append(Recipe.prep_time + Recipe.cook_time <= query.max_total_time)

    return conditions


def average_rating_expr():
    # ordered by the one-decimal value clients see; recipe_id breaks ties
    return (
        select(func.round(func.coalesce(func.avg(Rating.value), 0), 1))
        .where(Rating.recipe_id == Recipe.recipe_id)
        .correlate(Recipe)
        .scalar_subquery()
    )


def likes_count_expr():
    return (
        select(func.count())
        .select_from(RecipeLike)
        .where(RecipeLike.recipe_id == Recipe.recipe_id)
        .correlate(Recipe)
        .scalar_subquery()
    )


def build_order(sort: SortKey, order: Optional[SortOrder] = None) -> list:
    if sort in (SortKey.NEWEST, SortKey.OLDEST):
        direction = DEFAULT_ORDER[sort]
    else:
        direction = order or DEFAULT_ORDER[sort]

    column = {
        SortKey.NEWEST: Recipe.created_at,
        SortKey.OLDEST: Recipe.created_at,
        SortKey.RATING: average_rating_expr(),
        SortKey.TITLE: Recipe.title,
        SortKey.PREP_TIME: Recipe.prep_time,
        SortKey.COOK_TIME: Recipe.cook_time,
    }[sort]

    primary = column.desc() if direction == SortOrder.DESC else column.asc()
    return [primary, Recipe.recipe_id.asc()]


class DiscoveryService:
    def __init__(self, db: AsyncSession):
        self._db = db

    async def _page(self, conditions: list, order: list, page: PageRequest) -> Page[Recipe]:
        total = await self._db.scalar(
            select(func.count()).select_from(Recipe).where(*conditions)
        )
        rows = await self._db.scalars(
            select(Recipe)
            .where(*conditions)
            .order_by(*order)
            .offset(page.offset)
            .limit(page.limit)
        )
        return Page(items=list(rows.all()), pagination=Pagination.build(page, total or 0))

    async def search(self, query: SearchQuery, page: PageRequest) -> Page[Recipe]:
        with tracer.start_as_current_span("search_recipes") as span:
            conditions = build_filter(query)
            span.set_attribute("search.conditions", len(conditions))
            result = await self._page(conditions, build_order(query.sort, query.order), page)

        logger.debug(
            "Search matched %d recipes (page %d)", result.pagination.total, page.page
        )
        return result

    async def browse(self, category: Category, value: str, page: PageRequest) -> Page[Recipe]:
        """Published, public recipes in one category, newest first."""
        with tracer.start_as_current_span("browse_recipes") as span:
            span.set_attribute("browse.category", category.value)
            conditions = visible() + [in_category(category, value)]
            return await self._page(conditions, build_order(SortKey.NEWEST), page)

    async def featured(self, limit: Optional[int] = None) -> list[Recipe]:
        page = PageRequest.of(1, limit)
        rows = await self._db.scalars(
            select(Recipe)
            .where(*visible(), Recipe.is_featured.is_(True))
            .order_by(Recipe.created_at.desc(), Recipe.recipe_id)
            .limit(page.limit)
        )
        return list(rows.all())

    async def popular(self, limit: Optional[int] = None) -> list[Recipe]:
        page = PageRequest.of(1, limit)
        rows = await self._db.scalars(
            select(Recipe)
            .where(*visible())
            .order_by(
                average_rating_expr().desc(),
                likes_count_expr().desc(),
                Recipe.views.desc(),
                Recipe.recipe_id,
            )
            .limit(page.limit)
        )
        return list(rows.all())

    async def _distinct(self, column) -> list[str]:
        rows = await self._db.scalars(select(distinct(column)).where(*visible()))
        return sorted(v for v in rows.all() if v)

    async def categories(self) -> Categories:
        """Distinct classification values across published, public recipes."""
        labels = await self._db.execute(
            select(RecipeLabel.axis, RecipeLabel.value)
            .join(Recipe, Recipe.recipe_id == RecipeLabel.recipe_id)
            .where(*visible())
            .distinct()
        )
        by_axis: dict[str, set[str]] = {axis.value: set() for axis in LabelAxis}
        for axis, value in labels.all():
            by_axis.setdefault(axis, set()).add(value)

        return Categories(
            cuisine_types=await self._distinct(Recipe.cuisine_type),
            meal_types=sorted(by_axis[LabelAxis.MEAL_TYPE.value]),
            dietary_restrictions=sorted(by_axis[LabelAxis.DIETARY.value]),
            tags=sorted(by_axis[LabelAxis.TAG.value]),
            difficulties=await self._distinct(Recipe.difficulty),
        )
