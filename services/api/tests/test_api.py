import pytest

from conftest import recipe_data


def _camel_recipe(**overrides) -> dict:
    data = recipe_data(**overrides)
    return {
        "title": data["title"],
        "description": data["description"],
        "ingredients": data["ingredients"],
        "instructions": data["instructions"],
        "cuisineType": data["cuisine_type"],
        "mealTypes": data["meal_types"],
        "dietaryRestrictions": data["dietary_restrictions"],
        "tags": data["tags"],
        "difficulty": data["difficulty"],
        "prepTime": data["prep_time"],
        "cookTime": data["cook_time"],
        "servings": data["servings"],
        "isPublished": data["is_published"],
    }


@pytest.fixture
async def alice(make_user):
    return await make_user("alice")


@pytest.fixture
async def bob(make_user):
    return await make_user("bob")


def as_user(user) -> dict:
    return {"X-User-Id": user.user_id}


async def _create(client, user, **overrides) -> dict:
    resp = await client.post("/recipes/", json=_camel_recipe(**overrides), headers=as_user(user))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]["recipe"]


async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


async def test_create_recipe_returns_camel_case_envelope(client, alice):
    resp = await client.post("/recipes/", json=_camel_recipe(), headers=as_user(alice))

    assert resp.status_code == 201
    body = resp.json()
    assert body["status"] == "success"
    assert body["message"] == "Recipe created successfully"
    recipe = body["data"]["recipe"]
    assert recipe["authorId"] == alice.user_id
    assert recipe["cuisineType"] == "Italian"
    assert recipe["totalTime"] == 25
    assert recipe["averageRating"] == 0
    assert recipe["likesCount"] == 0


async def test_protected_route_requires_user_header(client):
    resp = await client.post("/recipes/", json=_camel_recipe())
    assert resp.status_code == 401
    assert resp.json()["status"] == "error"


async def test_structural_validation_is_400(client, alice):
    resp = await client.post(
        "/recipes/", json=_camel_recipe(servings=0), headers=as_user(alice)
    )
    assert resp.status_code == 400
    assert resp.json()["status"] == "error"


async def test_missing_recipe_is_404_envelope(client):
    resp = await client.get("/recipes/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"status": "error", "message": "Recipe not found"}


async def test_rate_and_like_flow(client, alice, bob):
    recipe = await _create(client, alice)
    rid = recipe["recipeId"]

    resp = await client.post(f"/recipes/{rid}/rate", json={"rating": 4}, headers=as_user(bob))
    assert resp.status_code == 200
    assert resp.json()["data"] == {"averageRating": 4.0, "ratingsCount": 1}

    resp = await client.post(f"/recipes/{rid}/rate", json={"rating": 9}, headers=as_user(bob))
    assert resp.status_code == 400

    resp = await client.post(f"/recipes/{rid}/like", headers=as_user(bob))
    assert resp.json()["data"] == {"isLiked": True, "likesCount": 1}

    resp = await client.get(f"/recipes/{rid}")
    data = resp.json()["data"]["recipe"]
    assert data["views"] == 1
    assert data["ratingsCount"] == 1
    assert data["likesCount"] == 1


async def test_author_only_mutation_is_403(client, alice, bob):
    recipe = await _create(client, alice)
    resp = await client.delete(f"/recipes/{recipe['recipeId']}", headers=as_user(bob))
    assert resp.status_code == 403


async def test_follow_flow_and_notifications(client, alice, bob):
    resp = await client.post(f"/users/{bob.user_id}/follow", headers=as_user(alice))
    assert resp.status_code == 200
    assert resp.json()["data"] == {
        "isFollowing": True,
        "followersCount": 1,
        "followingCount": 1,
    }

    resp = await client.post(f"/users/{bob.user_id}/follow", headers=as_user(alice))
    assert resp.status_code == 409

    resp = await client.post(f"/users/{alice.user_id}/follow", headers=as_user(alice))
    assert resp.status_code == 400

    resp = await client.get("/notifications/", headers=as_user(bob))
    body = resp.json()
    assert body["data"]["unreadCount"] == 1
    [notification] = body["data"]["notifications"]
    assert notification["message"] == "alice started following you"
    assert body["pagination"]["total"] == 1

    resp = await client.patch(
        f"/notifications/{notification['notificationId']}/read", headers=as_user(alice)
    )
    assert resp.status_code == 403

    resp = await client.patch("/notifications/read-all", headers=as_user(bob))
    assert resp.json()["data"] == {"updatedCount": 1}

    resp = await client.get(f"/users/{bob.user_id}", headers=as_user(alice))
    data = resp.json()["data"]
    assert data["user"]["followersCount"] == 1
    assert data["isFollowing"] is True


async def test_comment_thread_endpoints(client, alice, bob):
    recipe = await _create(client, alice)
    rid = recipe["recipeId"]

    resp = await client.post(
        f"/recipes/{rid}/comments", json={"content": "Nice!"}, headers=as_user(bob)
    )
    assert resp.status_code == 201
    root = resp.json()["data"]["comment"]

    resp = await client.post(
        f"/recipes/{rid}/comments",
        json={"content": "Thanks", "parentComment": root["commentId"]},
        headers=as_user(alice),
    )
    reply = resp.json()["data"]["comment"]
    assert reply["parentComment"] == root["commentId"]

    resp = await client.post(
        f"/recipes/{rid}/comments",
        json={"content": "Too deep", "parentComment": reply["commentId"]},
        headers=as_user(bob),
    )
    assert resp.status_code == 400

    resp = await client.get(f"/recipes/{rid}/comments")
    [thread] = resp.json()["data"]["comments"]
    assert [r["commentId"] for r in thread["replies"]] == [reply["commentId"]]

    resp = await client.put(
        f"/comments/{root['commentId']}", json={"content": "Very nice!"}, headers=as_user(bob)
    )
    assert resp.json()["data"]["comment"]["isEdited"] is True

    resp = await client.delete(f"/comments/{root['commentId']}", headers=as_user(bob))
    assert resp.json()["data"] == {"deletedCount": 2}


async def test_search_returns_pagination_block(client, alice):
    for i in range(3):
        await _create(client, alice, title=f"Soup number {i}")
    await _create(client, alice, title="Hidden soup", is_published=False)

    resp = await client.get("/recipes/search", params={"q": "soup", "limit": 2, "page": 2})

    body = resp.json()
    assert len(body["data"]["recipes"]) == 1
    assert body["pagination"] == {
        "page": 2,
        "limit": 2,
        "total": 3,
        "totalPages": 2,
        "hasNextPage": False,
        "hasPrevPage": True,
    }


async def test_search_rejects_unknown_sort(client):
    resp = await client.get("/recipes/search", params={"sortBy": "calories"})
    assert resp.status_code == 400


async def test_categories_endpoint(client, alice):
    await _create(client, alice, cuisine_type="Thai", tags=["spicy"])
    resp = await client.get("/recipes/categories")
    data = resp.json()["data"]
    assert data["cuisineTypes"] == ["Thai"]
    assert data["tags"] == ["spicy"]
    assert data["difficulties"] == ["Easy"]


async def test_favorites_endpoints(client, alice, bob):
    recipe = await _create(client, alice)
    rid = recipe["recipeId"]

    assert (await client.post(f"/recipes/{rid}/favorite", headers=as_user(bob))).status_code == 200
    assert (await client.post(f"/recipes/{rid}/favorite", headers=as_user(bob))).status_code == 409

    resp = await client.get(f"/users/{bob.user_id}/favorites")
    assert [r["recipeId"] for r in resp.json()["data"]["recipes"]] == [rid]


async def test_share_link_endpoint(client, alice):
    recipe = await _create(client, alice)
    resp = await client.post(
        f"/recipes/{recipe['recipeId']}/share", json={"method": "link"}, headers=as_user(alice)
    )
    assert resp.json()["data"]["shareLink"].endswith(f"/recipes/{recipe['recipeId']}")


async def test_draft_is_404_on_every_engagement_route(client, alice, bob):
    draft = await _create(client, alice, title="Secret draft", is_published=False)
    rid = draft["recipeId"]
    bob_headers = as_user(bob)

    attempts = [
        client.get(f"/recipes/{rid}", headers=bob_headers),
        client.post(f"/recipes/{rid}/rate", json={"rating": 5}, headers=bob_headers),
        client.post(f"/recipes/{rid}/like", headers=bob_headers),
        client.get(f"/recipes/{rid}/likes", headers=bob_headers),
        client.post(f"/recipes/{rid}/views"),
        client.get(f"/recipes/{rid}/comments", headers=bob_headers),
        client.post(f"/recipes/{rid}/comments", json={"content": "Hi"}, headers=bob_headers),
        client.post(f"/recipes/{rid}/favorite", headers=bob_headers),
    ]
    for attempt in attempts:
        resp = await attempt
        assert resp.status_code == 404, resp.request.url

    resp = await client.get("/notifications/", headers=as_user(alice))
    assert resp.json()["data"]["notifications"] == []

    resp = await client.get(f"/recipes/{rid}/comments", headers=as_user(alice))
    assert resp.status_code == 200


async def test_browse_routes(client, alice):
    thai = await _create(client, alice, cuisine_type="Thai", meal_types=["Lunch"], tags=["spicy"])
    await _create(client, alice, cuisine_type="French")

    resp = await client.get("/recipes/cuisine/thai")
    body = resp.json()
    assert [r["recipeId"] for r in body["data"]["recipes"]] == [thai["recipeId"]]
    assert body["data"]["cuisineType"] == "thai"
    assert body["pagination"]["total"] == 1

    resp = await client.get("/recipes/meal/lunch")
    assert [r["recipeId"] for r in resp.json()["data"]["recipes"]] == [thai["recipeId"]]
    resp = await client.get("/recipes/dietary/vegetarian")
    assert resp.json()["pagination"]["total"] == 2
    resp = await client.get("/recipes/tag/SPICY")
    assert resp.json()["data"]["tag"] == "SPICY"
    assert resp.json()["pagination"]["total"] == 1


async def test_user_search_route(client, alice, bob):
    resp = await client.get("/users/search", params={"q": "ALI"})
    assert resp.status_code == 200
    body = resp.json()
    assert [u["userId"] for u in body["data"]["users"]] == [alice.user_id]
    assert body["pagination"]["total"] == 1

    resp = await client.get("/users/search")
    assert resp.status_code == 400


async def test_delete_notification_route(client, alice, bob):
    await client.post(f"/users/{bob.user_id}/follow", headers=as_user(alice))
    resp = await client.get("/notifications/", headers=as_user(bob))
    [notification] = resp.json()["data"]["notifications"]
    nid = notification["notificationId"]

    resp = await client.delete(f"/notifications/{nid}", headers=as_user(alice))
    assert resp.status_code == 403

    resp = await client.delete(f"/notifications/{nid}", headers=as_user(bob))
    assert resp.status_code == 200
    assert resp.json()["message"] == "Notification deleted successfully"

    resp = await client.get("/notifications/unread-count", headers=as_user(bob))
    assert resp.json()["data"] == {"unreadCount": 0}
