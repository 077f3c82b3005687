import asyncio

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select

from recipeshare.errors import ConflictError, NotFoundError, ValidationError
from recipeshare.models import Rating, Recipe
from recipeshare.pagination import PageRequest
from recipeshare.services.engagement_service import EngagementService
from recipeshare.services.notification_pipeline import NotificationPipeline


@pytest.fixture
def engagement(db, notifier):
    return EngagementService(db, notifier)


async def test_average_of_four_fives_and_a_one_is_four(engagement, make_user, make_recipe):
    recipe = await make_recipe()
    for _ in range(4):
        user = await make_user()
        await engagement.rate(recipe.recipe_id, user.user_id, 5)

    summary = await engagement.rating_summary(recipe.recipe_id)
    assert (summary.average_rating, summary.ratings_count) == (5.0, 4)

    fifth = await make_user()
    summary = await engagement.rate(recipe.recipe_id, fifth.user_id, 1)
    assert summary.average_rating == 4.0
    assert summary.ratings_count == 5


async def test_rerating_overwrites_in_place(db, engagement, make_user, make_recipe):
    recipe = await make_recipe()
    user = await make_user()

    await engagement.rate(recipe.recipe_id, user.user_id, 2, review="meh")
    summary = await engagement.rate(recipe.recipe_id, user.user_id, 5, review="better")

    assert summary.ratings_count == 1
    assert summary.average_rating == 5.0
    stored = await db.get(Rating, (recipe.recipe_id, user.user_id))
    assert stored.value == 5
    assert stored.review == "better"


async def test_average_rounds_half_up(engagement, make_user, make_recipe):
    recipe = await make_recipe()
    for value in (4, 4, 4, 5):
        user = await make_user()
        summary = await engagement.rate(recipe.recipe_id, user.user_id, value)
    assert summary.average_rating == 4.3


async def test_unrated_recipe_averages_zero(engagement, make_recipe):
    recipe = await make_recipe()
    summary = await engagement.rating_summary(recipe.recipe_id)
    assert summary.average_rating == 0
    assert summary.ratings_count == 0


@pytest.mark.parametrize("value", [0, 6, -1, 3.5, True, "4"])
async def test_out_of_range_rating_rejected(engagement, make_user, make_recipe, value):
    recipe = await make_recipe()
    user = await make_user()
    with pytest.raises(ValidationError):
        await engagement.rate(recipe.recipe_id, user.user_id, value)
    summary = await engagement.rating_summary(recipe.recipe_id)
    assert summary.ratings_count == 0


async def test_rating_missing_recipe_is_not_found(engagement, make_user):
    user = await make_user()
    with pytest.raises(NotFoundError):
        await engagement.rate("no-such-recipe", user.user_id, 4)


async def test_only_first_rating_notifies_author(engagement, notifier, make_user, make_recipe):
    author = await make_user()
    recipe = await make_recipe(author=author, title="Lemon Tart")
    rater = await make_user()

    await engagement.rate(recipe.recipe_id, rater.user_id, 3)
    await engagement.rate(recipe.recipe_id, rater.user_id, 4)

    page = await notifier.list(author.user_id, PageRequest.of())
    assert len(page.items) == 1
    assert page.items[0].type == "rating"
    assert page.items[0].message == 'rated your recipe "Lemon Tart"'


async def test_rating_own_recipe_does_not_notify(engagement, notifier, make_user, make_recipe):
    author = await make_user()
    recipe = await make_recipe(author=author)
    await engagement.rate(recipe.recipe_id, author.user_id, 5)
    assert await notifier.unread_count(author.user_id) == 0


async def test_remove_rating(engagement, make_user, make_recipe):
    recipe = await make_recipe()
    user = await make_user()
    await engagement.rate(recipe.recipe_id, user.user_id, 2)

    summary = await engagement.remove_rating(recipe.recipe_id, user.user_id)
    assert summary.ratings_count == 0
    with pytest.raises(ConflictError):
        await engagement.remove_rating(recipe.recipe_id, user.user_id)


async def test_toggle_like_twice_returns_to_unliked(engagement, make_user, make_recipe):
    recipe = await make_recipe()
    user = await make_user()

    liked = await engagement.toggle_like(recipe.recipe_id, user.user_id)
    assert liked.is_liked is True
    assert liked.likes_count == 1

    unliked = await engagement.toggle_like(recipe.recipe_id, user.user_id)
    assert unliked.is_liked is False
    assert unliked.likes_count == 0


async def test_like_notifies_on_like_only(engagement, notifier, make_user, make_recipe):
    author = await make_user()
    recipe = await make_recipe(author=author, title="Miso Soup")
    fan = await make_user()

    await engagement.toggle_like(recipe.recipe_id, fan.user_id)
    await engagement.toggle_like(recipe.recipe_id, fan.user_id)

    page = await notifier.list(author.user_id, PageRequest.of())
    assert [n.title for n in page.items] == ["Recipe Liked"]
    assert page.items[0].sender_id == fan.user_id


async def test_list_likes(engagement, make_user, make_recipe):
    recipe = await make_recipe()
    fans = [await make_user() for _ in range(3)]
    for fan in fans:
        await engagement.toggle_like(recipe.recipe_id, fan.user_id)

    users = await engagement.list_likes(recipe.recipe_id)
    assert {u.user_id for u in users} == {f.user_id for f in fans}


async def test_increment_views_counts_every_call(db, engagement, make_recipe):
    recipe = await make_recipe()
    for _ in range(3):
        await engagement.increment_views(recipe.recipe_id)

    views = await db.scalar(select(Recipe.views).where(Recipe.recipe_id == recipe.recipe_id))
    assert views == 3


async def test_increment_views_missing_recipe(engagement):
    with pytest.raises(NotFoundError):
        await engagement.increment_views("no-such-recipe")


async def test_failed_notification_never_undoes_the_like(db, make_user, make_recipe):
    def broken_factory():
        raise RuntimeError("notification store unavailable")

    failed = REGISTRY.get_sample_value("notifications_failed_total") or 0
    engagement = EngagementService(db, NotificationPipeline(broken_factory))
    recipe = await make_recipe()
    fan = await make_user()

    state = await engagement.toggle_like(recipe.recipe_id, fan.user_id)

    assert state.is_liked is True
    assert await engagement.likes_count(recipe.recipe_id) == 1
    assert REGISTRY.get_sample_value("notifications_failed_total") == failed + 1


async def test_ratings_are_unique_per_user(db, engagement, make_user, make_recipe):
    recipe = await make_recipe()
    user = await make_user()
    for value in (1, 2, 3):
        await engagement.rate(recipe.recipe_id, user.user_id, value)
    count = await db.scalar(
        select(func.count()).select_from(Rating).where(Rating.recipe_id == recipe.recipe_id)
    )
    assert count == 1


async def test_concurrent_first_ratings_by_one_user_leave_one_entry(
    session_factory, notifier, make_user, make_recipe
):
    author = await make_user()
    recipe = await make_recipe(author=author)
    rater = await make_user()

    async def rate(value):
        async with session_factory() as session:
            return await EngagementService(session, notifier).rate(
                recipe.recipe_id, rater.user_id, value
            )

    results = await asyncio.gather(rate(4), rate(5))

    assert [r.ratings_count for r in results] == [1, 1]
    async with session_factory() as session:
        [stored] = (
            await session.scalars(select(Rating).where(Rating.recipe_id == recipe.recipe_id))
        ).all()
    assert stored.value in (4, 5)
    assert await notifier.unread_count(author.user_id) == 1


async def test_lost_insert_race_becomes_an_overwrite(
    db, session_factory, notifier, make_user, make_recipe, monkeypatch
):
    author = await make_user()
    recipe = await make_recipe(author=author)
    rater = await make_user()
    recipe_id, rater_id, author_id = recipe.recipe_id, rater.user_id, author.user_id

    async with session_factory() as other:
        await EngagementService(other, notifier).rate(recipe_id, rater_id, 2, review="first")

    # this session looks before the other commit lands, then inserts
    real_get = db.get
    stale = []

    async def get(model, key, **kwargs):
        if model is Rating and not stale:
            stale.append(key)
            return None
        return await real_get(model, key, **kwargs)

    monkeypatch.setattr(db, "get", get)

    summary = await EngagementService(db, notifier).rate(recipe_id, rater_id, 5, review="second")

    assert stale == [(recipe_id, rater_id)]
    assert (summary.average_rating, summary.ratings_count) == (5.0, 1)
    async with session_factory() as session:
        stored = await session.get(Rating, (recipe_id, rater_id))
        assert (stored.value, stored.review) == (5, "second")
    assert await notifier.unread_count(author_id) == 1


@pytest.mark.parametrize("hidden", [{"is_published": False}, {"is_public": False}])
async def test_hidden_recipe_rejects_engagement_from_others(
    engagement, notifier, make_user, make_recipe, hidden
):
    author = await make_user()
    recipe = await make_recipe(author=author, title="Secret draft", **hidden)
    stranger = await make_user()

    with pytest.raises(NotFoundError):
        await engagement.rate(recipe.recipe_id, stranger.user_id, 5)
    with pytest.raises(NotFoundError):
        await engagement.remove_rating(recipe.recipe_id, stranger.user_id)
    with pytest.raises(NotFoundError):
        await engagement.toggle_like(recipe.recipe_id, stranger.user_id)
    with pytest.raises(NotFoundError):
        await engagement.list_likes(recipe.recipe_id, stranger.user_id)
    with pytest.raises(NotFoundError):
        await engagement.increment_views(recipe.recipe_id)

    assert (await engagement.rating_summary(recipe.recipe_id)).ratings_count == 0
    assert await engagement.likes_count(recipe.recipe_id) == 0
    assert await notifier.unread_count(author.user_id) == 0


async def test_author_may_engage_with_own_draft(db, engagement, make_user, make_recipe):
    author = await make_user()
    draft = await make_recipe(author=author, is_published=False)

    summary = await engagement.rate(draft.recipe_id, author.user_id, 4)
    assert summary.ratings_count == 1
    await engagement.increment_views(draft.recipe_id, author.user_id)
    assert [u.user_id for u in await engagement.list_likes(draft.recipe_id, author.user_id)] == []

    views = await db.scalar(select(Recipe.views).where(Recipe.recipe_id == draft.recipe_id))
    assert views == 1
