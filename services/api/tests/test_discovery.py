from datetime import datetime, timedelta

import pytest

from recipeshare.models import Rating, RecipeLike
from recipeshare.pagination import PageRequest
from recipeshare.services.discovery_service import (
    Category,
    DiscoveryService,
    SearchQuery,
    SortKey,
    SortOrder,
)

T0 = datetime(2024, 1, 1, 12, 0, 0)


@pytest.fixture
def discovery(db):
    return DiscoveryService(db)


async def _ids(discovery, query=None, page=None):
    result = await discovery.search(query or SearchQuery(), page or PageRequest.of())
    return [r.recipe_id for r in result.items]


async def test_only_published_public_recipes_are_searchable(discovery, make_recipe):
    visible = await make_recipe()
    await make_recipe(is_published=False)
    await make_recipe(is_public=False)

    assert await _ids(discovery) == [visible.recipe_id]


async def test_keyword_matches_title_description_and_tags(discovery, make_recipe):
    by_title = await make_recipe(title="Spicy Curry")
    by_description = await make_recipe(description="A curry inspired weeknight dish.")
    by_tag = await make_recipe(tags=["CurryNight"])
    await make_recipe(title="Plain Rice", tags=["simple"])

    found = await _ids(discovery, SearchQuery(keyword="curry"))
    assert set(found) == {by_title.recipe_id, by_description.recipe_id, by_tag.recipe_id}


async def test_keyword_is_literal_not_a_pattern(discovery, make_recipe):
    await make_recipe(title="Plain Rice")
    assert await _ids(discovery, SearchQuery(keyword="%")) == []


async def test_ingredients_must_all_match(discovery, make_recipe):
    both = await make_recipe(
        ingredients=[
            {"name": "Chicken Thighs", "amount": 500, "unit": "g"},
            {"name": "Garlic", "amount": 3, "unit": "cloves"},
        ]
    )
    await make_recipe(ingredients=[{"name": "Chicken breast", "amount": 1, "unit": "pc"}])

    found = await _ids(discovery, SearchQuery(ingredients=["chicken", "GARLIC"]))
    assert found == [both.recipe_id]


async def test_classification_filters(discovery, make_recipe):
    target = await make_recipe(
        cuisine_type="Thai",
        difficulty="Hard",
        meal_types=["Lunch"],
        dietary_restrictions=["Vegan", "Gluten-Free"],
        prep_time=20,
        cook_time=20,
    )
    await make_recipe(cuisine_type="Thai", difficulty="Easy")
    await make_recipe(cuisine_type="French", difficulty="Hard", prep_time=60, cook_time=60)

    assert await _ids(discovery, SearchQuery(cuisine_type="Thai", difficulty="Hard")) == [
        target.recipe_id
    ]
    assert await _ids(discovery, SearchQuery(meal_types=["Lunch", "Brunch"])) == [target.recipe_id]
    assert await _ids(discovery, SearchQuery(dietary_restrictions=["Vegan"])) == [target.recipe_id]
    assert target.recipe_id in await _ids(discovery, SearchQuery(max_total_time=40))
    assert len(await _ids(discovery, SearchQuery(max_total_time=39))) == 1


async def test_tags_filter_matches_any(discovery, make_recipe):
    quick = await make_recipe(tags=["quick"])
    cheap = await make_recipe(tags=["cheap"])
    await make_recipe(tags=["fancy"])

    found = await _ids(discovery, SearchQuery(tags=["quick", "cheap"]))
    assert set(found) == {quick.recipe_id, cheap.recipe_id}


async def test_sort_by_created_at(discovery, make_recipe):
    old = await make_recipe(created_at=T0)
    new = await make_recipe(created_at=T0 + timedelta(days=1))

    assert await _ids(discovery, SearchQuery(sort=SortKey.NEWEST)) == [new.recipe_id, old.recipe_id]
    assert await _ids(discovery, SearchQuery(sort=SortKey.OLDEST)) == [old.recipe_id, new.recipe_id]
    # direction is part of what newest/oldest mean
    assert await _ids(
        discovery, SearchQuery(sort=SortKey.NEWEST, order=SortOrder.ASC)
    ) == [new.recipe_id, old.recipe_id]


async def test_sort_by_title_and_times(discovery, make_recipe):
    b = await make_recipe(title="Banana Bread", prep_time=30, cook_time=5)
    a = await make_recipe(title="Apple Pie", prep_time=10, cook_time=50)

    assert await _ids(discovery, SearchQuery(sort=SortKey.TITLE)) == [a.recipe_id, b.recipe_id]
    assert await _ids(
        discovery, SearchQuery(sort=SortKey.TITLE, order=SortOrder.DESC)
    ) == [b.recipe_id, a.recipe_id]
    assert await _ids(discovery, SearchQuery(sort=SortKey.PREP_TIME)) == [a.recipe_id, b.recipe_id]
    assert await _ids(discovery, SearchQuery(sort=SortKey.COOK_TIME)) == [b.recipe_id, a.recipe_id]


async def test_sort_by_live_rating(db, discovery, make_user, make_recipe):
    unrated = await make_recipe()
    good = await make_recipe()
    okay = await make_recipe()
    rater = await make_user()
    db.add_all(
        [
            Rating(recipe_id=good.recipe_id, user_id=rater.user_id, value=5),
            Rating(recipe_id=okay.recipe_id, user_id=rater.user_id, value=3),
        ]
    )
    await db.commit()

    assert await _ids(discovery, SearchQuery(sort=SortKey.RATING)) == [
        good.recipe_id,
        okay.recipe_id,
        unrated.recipe_id,
    ]


async def test_pages_partition_the_result_set(discovery, make_recipe):
    for i in range(25):
        await make_recipe(title=f"Recipe {i:02d}", created_at=T0 + timedelta(minutes=i))

    seen = []
    for page in (1, 2, 3):
        result = await discovery.search(SearchQuery(), PageRequest.of(page, 10))
        seen.extend(r.recipe_id for r in result.items)
        assert result.pagination.total == 25
        assert result.pagination.total_pages == 3

    assert len(seen) == 25
    assert len(set(seen)) == 25

    last = await discovery.search(SearchQuery(), PageRequest.of(3, 10))
    assert len(last.items) == 5
    assert last.pagination.has_next_page is False
    assert last.pagination.has_prev_page is True


async def test_page_past_the_end_is_empty(discovery, make_recipe):
    await make_recipe()
    result = await discovery.search(SearchQuery(), PageRequest.of(5, 10))
    assert result.items == []
    assert result.pagination.total == 1


async def test_categories_reflect_visible_recipes(discovery, make_recipe):
    await make_recipe(
        cuisine_type="Thai",
        meal_types=["Lunch"],
        dietary_restrictions=["Vegan"],
        tags=["spicy"],
        difficulty="Hard",
    )
    await make_recipe(cuisine_type="French", meal_types=["Dinner"], tags=["classic"])
    await make_recipe(cuisine_type="Korean", tags=["secret"], is_published=False)

    categories = await discovery.categories()

    assert categories.cuisine_types == ["French", "Thai"]
    assert categories.meal_types == ["Dinner", "Lunch"]
    assert categories.dietary_restrictions == ["Vegan", "Vegetarian"]
    assert categories.tags == ["classic", "spicy"]
    assert categories.difficulties == ["Easy", "Hard"]


async def test_featured(db, discovery, make_recipe):
    featured = await make_recipe()
    await make_recipe()
    featured.is_featured = True
    await db.commit()

    assert [r.recipe_id for r in await discovery.featured()] == [featured.recipe_id]


async def test_popular_orders_by_rating_then_likes(db, discovery, make_user, make_recipe):
    liked = await make_recipe()
    rated = await make_recipe()
    plain = await make_recipe()
    fan = await make_user()
    db.add_all(
        [
            Rating(recipe_id=rated.recipe_id, user_id=fan.user_id, value=4),
            RecipeLike(recipe_id=liked.recipe_id, user_id=fan.user_id),
        ]
    )
    await db.commit()

    popular = await discovery.popular(limit=2)
    assert [r.recipe_id for r in popular] == [rated.recipe_id, liked.recipe_id]
    assert plain.recipe_id not in [r.recipe_id for r in popular]


async def test_rating_sort_compares_displayed_averages(db, discovery, make_user, make_recipe):
    quarter = await make_recipe()  # 4, 4, 4, 5 -> 4.25, shown as 4.3
    third = await make_recipe()    # 4, 4, 5    -> 4.33, shown as 4.3
    raters = [await make_user() for _ in range(4)]
    db.add_all(
        [Rating(recipe_id=quarter.recipe_id, user_id=u.user_id, value=v)
         for u, v in zip(raters, (4, 4, 4, 5))]
        + [Rating(recipe_id=third.recipe_id, user_id=u.user_id, value=v)
           for u, v in zip(raters, (4, 4, 5))]
    )
    await db.commit()

    # equal as displayed, so recipe_id decides
    assert await _ids(discovery, SearchQuery(sort=SortKey.RATING)) == sorted(
        [quarter.recipe_id, third.recipe_id]
    )


async def test_browse_by_category_ignores_case(discovery, make_recipe):
    thai = await make_recipe(
        cuisine_type="Thai", meal_types=["Lunch"], dietary_restrictions=["Vegan"], tags=["Spicy"]
    )
    await make_recipe(cuisine_type="French", meal_types=["Dinner"], tags=["classic"])
    await make_recipe(cuisine_type="Thai", tags=["spicy"], is_published=False)

    for category, value in [
        (Category.CUISINE, "thai"),
        (Category.MEAL_TYPE, "LUNCH"),
        (Category.DIETARY, "vegan"),
        (Category.TAG, "spicy"),
    ]:
        result = await discovery.browse(category, value, PageRequest.of())
        assert [r.recipe_id for r in result.items] == [thai.recipe_id], category
        assert result.pagination.total == 1


async def test_browse_is_newest_first_and_paged(discovery, make_recipe):
    for i in range(3):
        await make_recipe(cuisine_type="Greek", created_at=T0 + timedelta(days=i))

    result = await discovery.browse(Category.CUISINE, "greek", PageRequest.of(1, 2))
    assert [r.created_at for r in result.items] == [T0 + timedelta(days=2), T0 + timedelta(days=1)]
    assert result.pagination.total == 3
    assert result.pagination.has_next_page is True


async def test_browse_matches_whole_values_only(discovery, make_recipe):
    await make_recipe(meal_types=["Dinner"])
    result = await discovery.browse(Category.MEAL_TYPE, "din", PageRequest.of())
    assert result.items == []
