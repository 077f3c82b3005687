import os

# Must be set before recipeshare.config is imported anywhere
os.environ.setdefault("TRACING_ENABLED", "false")
os.environ.setdefault("KAFKA_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from recipeshare.database import (  # noqa: E402
    build_engine,
    build_session_factory,
    get_db,
    get_session_factory,
    init_db,
)
from recipeshare.models import User  # noqa: E402
from recipeshare.services.notification_pipeline import NotificationPipeline  # noqa: E402
from recipeshare.services.recipe_service import RecipeService  # noqa: E402


def recipe_data(**overrides) -> dict:
    data = {
        "title": "Weeknight Pasta",
        "description": "A quick tomato pasta for busy evenings.",
        "ingredients": [
            {"name": "Spaghetti", "amount": 200, "unit": "g"},
            {"name": "Tomato", "amount": 3, "unit": "pcs", "notes": "ripe"},
        ],
        "instructions": [
            {"step": 1, "description": "Boil the pasta."},
            {"step": 2, "description": "Make the sauce."},
        ],
        "images": [],
        "cuisine_type": "Italian",
        "meal_types": ["Dinner"],
        "dietary_restrictions": ["Vegetarian"],
        "tags": ["quick"],
        "difficulty": "Easy",
        "prep_time": 10,
        "cook_time": 15,
        "servings": 2,
        "is_public": True,
        "is_published": True,
    }
    data.update(overrides)
    return data


@pytest.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'recipeshare.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def notifier(session_factory):
    return NotificationPipeline(session_factory)


@pytest.fixture
def make_user(db):
    async def _make(username=None, **fields) -> User:
        user = User(username=username or f"user_{uuid4().hex[:8]}", **fields)
        db.add(user)
        await db.commit()
        return user

    return _make


@pytest.fixture
def make_recipe(db, notifier, make_user):
    async def _make(author=None, **overrides):
        if author is None:
            author = await make_user()
        return await RecipeService(db, notifier).create_recipe(
            author.user_id, recipe_data(**overrides)
        )

    return _make


@pytest.fixture
async def client(session_factory):
    from recipeshare.main import app

    async def override_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
