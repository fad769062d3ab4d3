"""
End-to-end flows through the public API only: a new author registers,
publishes into an admin-made category, and the counters follow the
post's life.
"""
import pytest
from httpx import AsyncClient

from blogapi.models import Role


async def _register(client: AsyncClient, name: str, email: str) -> dict:
    resp = await client.post(
        "/api/v1/auth/register", json={"name": name, "email": email, "password": "secret1"}
    )
    assert resp.status_code == 201
    return resp.json()


@pytest.mark.asyncio
async def test_author_lifecycle(async_client: AsyncClient, make_user, auth_headers):
    registered = await _register(async_client, "Alice", "alice@example.com")
    alice_id = registered["user"]["id"]

    login = await async_client.post(
        "/api/v1/auth/login", json={"email": "alice@example.com", "password": "secret1"}
    )
    alice = {"Authorization": f"Bearer {login.json()['token']}"}

    # Only admins manage categories.
    refused = await async_client.post("/api/v1/categories", headers=alice, json={"name": "Tech"})
    assert refused.status_code == 403

    admin = await make_user(name="Admin", email="admin@example.com", role=Role.ADMIN.value)
    tech = (
        await async_client.post("/api/v1/categories", headers=auth_headers(admin), json={"name": "Tech"})
    ).json()["data"]
    assert tech["post_count"] == 0

    created = await async_client.post(
        "/api/v1/posts",
        headers=alice,
        json={
            "title": "My first post",
            "content": "Hello from the other side of the API",
            "category_id": tech["id"],
            "is_published": True,
        },
    )
    assert created.status_code == 201
    post = created.json()["data"]

    me = (await async_client.get("/api/v1/auth/me", headers=alice)).json()["user"]
    category = (await async_client.get("/api/v1/categories/tech")).json()["data"]
    assert me["post_count"] == 1
    assert category["category"]["post_count"] == 1
    assert [p["id"] for p in category["posts"]["data"]] == [post["id"]]

    # Someone else comments; a third party reads it.
    bob = await _register(async_client, "Bob", "bob@example.com")
    bob_headers = {"Authorization": f"Bearer {bob['token']}"}
    comment = await async_client.post(
        f"/api/v1/posts/{post['id']}/comments", headers=bob_headers, json={"content": "Welcome!"}
    )
    assert comment.status_code == 201
    detail = (await async_client.get(f"/api/v1/posts/{post['slug']}")).json()["data"]
    assert detail["comments"][0]["user"]["name"] == "Bob"
    assert detail["view_count"] == 1

    # Bob cannot remove Alice's post; Alice can.
    assert (await async_client.delete(f"/api/v1/posts/{post['id']}", headers=bob_headers)).status_code == 403
    assert (await async_client.delete(f"/api/v1/posts/{post['id']}", headers=alice)).status_code == 200

    me = (await async_client.get(f"/api/v1/users/{alice_id}")).json()["user"]
    category = (await async_client.get("/api/v1/categories/tech")).json()["data"]
    assert me["post_count"] == 0
    assert category["category"]["post_count"] == 0
    assert (await async_client.get(f"/api/v1/posts/{post['id']}/comments")).json()["count"] == 0


@pytest.mark.asyncio
async def test_category_with_posts_survives_delete_attempt(
    async_client: AsyncClient, make_user, auth_headers
):
    admin = await make_user(name="Admin", email="admin@example.com", role=Role.ADMIN.value)
    headers = auth_headers(admin)
    tech = (await async_client.post("/api/v1/categories", headers=headers, json={"name": "Tech"})).json()["data"]
    post = (
        await async_client.post(
            "/api/v1/posts",
            headers=headers,
            json={"title": "Pinned", "content": "Content long enough", "category_id": tech["id"]},
        )
    ).json()["data"]

    refused = await async_client.delete(f"/api/v1/categories/{tech['id']}", headers=headers)
    assert refused.status_code == 400
    assert "1 post(s)" in refused.json()["error"]

    # Once the post is gone the category can go too.
    assert (await async_client.delete(f"/api/v1/posts/{post['id']}", headers=headers)).status_code == 200
    assert (await async_client.delete(f"/api/v1/categories/{tech['id']}", headers=headers)).status_code == 200
    assert (await async_client.get("/api/v1/categories")).json()["count"] == 0
