"""
Category tests — public reads, admin-only writes, unique name / slug,
and the referenced-category delete refusal.
"""
import pytest
import pytest_asyncio
from httpx import AsyncClient

from blogapi.models import Role


@pytest_asyncio.fixture
async def admin_headers(make_user, auth_headers):
    admin = await make_user(name="Admin", email="admin@example.com", role=Role.ADMIN.value)
    return auth_headers(admin)


async def _create_category(client: AsyncClient, headers: dict, **payload) -> dict:
    resp = await client.post("/api/v1/categories", headers=headers, json={"name": "Tech", **payload})
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def _create_post(client: AsyncClient, headers: dict, category_id: int, **extra) -> dict:
    resp = await client.post(
        "/api/v1/posts",
        headers=headers,
        json={"title": "Category post", "content": "Content long enough", "category_id": category_id, **extra},
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_category(async_client: AsyncClient, admin_headers):
    category = await _create_category(
        async_client, admin_headers, name="Web Development", description="All things web"
    )
    assert category["slug"] == "web-development"
    assert category["color"] == "#3B82F6"
    assert category["post_count"] == 0
    assert category["description"] == "All things web"


@pytest.mark.asyncio
async def test_create_category_rejects_bad_color(async_client: AsyncClient, admin_headers):
    resp = await async_client.post(
        "/api/v1/categories", headers=admin_headers, json={"name": "Tech", "color": "blue"}
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_duplicate_name_conflicts(async_client: AsyncClient, admin_headers):
    await _create_category(async_client, admin_headers)
    resp = await async_client.post("/api/v1/categories", headers=admin_headers, json={"name": "tech"})
    assert resp.status_code == 409
    body = resp.json()
    assert body["success"] is False
    assert body["details"] == [{"field": "name", "message": body["error"]}]


@pytest.mark.asyncio
async def test_duplicate_slug_conflicts(async_client: AsyncClient, admin_headers):
    await _create_category(async_client, admin_headers, name="Web Dev")
    resp = await async_client.post("/api/v1/categories", headers=admin_headers, json={"name": "Web-Dev"})
    assert resp.status_code == 409
    assert resp.json()["details"][0]["field"] == "slug"


@pytest.mark.asyncio
async def test_update_name_recomputes_slug(async_client: AsyncClient, admin_headers):
    category = await _create_category(async_client, admin_headers)
    resp = await async_client.put(
        f"/api/v1/categories/{category['id']}", headers=admin_headers, json={"name": "Technology"}
    )
    assert resp.status_code == 200
    assert resp.json()["data"]["slug"] == "technology"

    color_only = await async_client.put(
        f"/api/v1/categories/{category['id']}", headers=admin_headers, json={"color": "#000000"}
    )
    assert color_only.json()["data"]["slug"] == "technology"
    assert color_only.json()["data"]["color"] == "#000000"


@pytest.mark.asyncio
async def test_update_to_existing_name_conflicts(async_client: AsyncClient, admin_headers):
    await _create_category(async_client, admin_headers, name="Tech")
    life = await _create_category(async_client, admin_headers, name="Life")
    resp = await async_client.put(
        f"/api/v1/categories/{life['id']}", headers=admin_headers, json={"name": "Tech"}
    )
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_update_missing_category(async_client: AsyncClient, admin_headers):
    resp = await async_client.put("/api/v1/categories/999", headers=admin_headers, json={"name": "New"})
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_non_admin_cannot_write(async_client: AsyncClient, make_user, make_category, auth_headers):
    user = await make_user()
    category = await make_category()
    headers = auth_headers(user)

    assert (await async_client.put(f"/api/v1/categories/{category.id}", headers=headers, json={"name": "X1"})).status_code == 403
    assert (await async_client.delete(f"/api/v1/categories/{category.id}", headers=headers)).status_code == 403


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_unused_category(async_client: AsyncClient, admin_headers):
    category = await _create_category(async_client, admin_headers)
    resp = await async_client.delete(f"/api/v1/categories/{category['id']}", headers=admin_headers)
    assert resp.status_code == 200
    assert (await async_client.get(f"/api/v1/categories/{category['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_delete_referenced_category_is_refused(async_client: AsyncClient, admin_headers):
    category = await _create_category(async_client, admin_headers)
    await _create_post(async_client, admin_headers, category["id"])
    await _create_post(async_client, admin_headers, category["id"], title="Second post")

    resp = await async_client.delete(f"/api/v1/categories/{category['id']}", headers=admin_headers)
    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Cannot delete category. It has 2 post(s) associated with it"
    assert body["details"] == [{"field": "post_count", "message": "2"}]

    still_there = await async_client.get(f"/api/v1/categories/{category['id']}")
    assert still_there.status_code == 200
    assert still_there.json()["data"]["category"]["post_count"] == 2


@pytest.mark.asyncio
async def test_delete_missing_category(async_client: AsyncClient, admin_headers):
    resp = await async_client.delete("/api/v1/categories/999", headers=admin_headers)
    assert resp.status_code == 404
    assert resp.json()["error"] == "Category not found"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_list_categories_is_public_and_sorted(async_client: AsyncClient, make_category):
    await make_category("Tech")
    await make_category("Art")
    resp = await async_client.get("/api/v1/categories")
    assert resp.status_code == 200
    assert [c["name"] for c in resp.json()["data"]] == ["Art", "Tech"]


@pytest.mark.asyncio
async def test_get_by_slug_lists_published_posts(async_client: AsyncClient, admin_headers):
    category = await _create_category(async_client, admin_headers)
    await _create_post(async_client, admin_headers, category["id"], title="Visible", is_published=True)
    await _create_post(async_client, admin_headers, category["id"], title="Hidden draft")

    resp = await async_client.get("/api/v1/categories/tech")
    data = resp.json()["data"]
    assert resp.status_code == 200
    assert data["category"]["id"] == category["id"]
    assert data["category"]["post_count"] == 2
    assert [p["title"] for p in data["posts"]["data"]] == ["Visible"]
    assert data["posts"]["total"] == 1


@pytest.mark.asyncio
async def test_category_stats(async_client: AsyncClient, admin_headers):
    tech = await _create_category(async_client, admin_headers, name="Tech")
    await _create_category(async_client, admin_headers, name="Empty")
    await _create_post(async_client, admin_headers, tech["id"], is_published=True)
    await _create_post(async_client, admin_headers, tech["id"], title="Draft one")

    resp = await async_client.get("/api/v1/categories/stats")
    stats = {row["slug"]: row for row in resp.json()["data"]}
    assert stats["tech"]["post_count"] == 2
    assert stats["tech"]["published_post_count"] == 1
    assert stats["empty"]["post_count"] == 0
    assert stats["empty"]["published_post_count"] == 0
    assert resp.json()["data"][0]["slug"] == "tech"


@pytest.mark.asyncio
@pytest.mark.parametrize("ident", ["²", "٣"])
async def test_non_ascii_digits_are_looked_up_as_slugs(async_client: AsyncClient, make_category, ident):
    await make_category()
    resp = await async_client.get(f"/api/v1/categories/{ident}")
    assert resp.status_code == 404
    assert resp.json()["error"] == "Category not found"


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["!!", "?? ??"])
async def test_name_without_slug_characters_is_rejected(async_client: AsyncClient, admin_headers, name):
    resp = await async_client.post("/api/v1/categories", headers=admin_headers, json={"name": name})
    assert resp.status_code == 400
    assert resp.json()["details"][0]["field"] == "name"
    assert (await async_client.get("/api/v1/categories")).json()["count"] == 0


@pytest.mark.asyncio
async def test_rename_to_name_without_slug_characters_is_rejected(async_client: AsyncClient, admin_headers):
    category = await _create_category(async_client, admin_headers)
    resp = await async_client.put(
        f"/api/v1/categories/{category['id']}", headers=admin_headers, json={"name": "!!"}
    )
    assert resp.status_code == 400

    unchanged = await async_client.get(f"/api/v1/categories/{category['id']}")
    assert unchanged.json()["data"]["category"]["slug"] == "tech"
