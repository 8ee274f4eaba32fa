"""Project Routes — visibility rules, filters, popular tags and owner-only mutations.

Invariants:
    - Private projects are invisible (404) to anyone but their owner and admins
    - Anonymous callers asking for public=false get an empty list

Tests cover:
    - create requires JWT; tags cleaned
    - list filters: search, tags (all must match), user_id, public=all/false
    - popular tags counted over public projects only
    - update/delete by owner; others get 404
"""

import uuid

from sqlalchemy import select

from app.models.project import Project

BASE = "/api/v1/projects"


async def _create(client, headers, **overrides):
    body = {"title": "Cartel Bot", "description": "Discord helper", **overrides}
    response = await client.post(BASE, json=body, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def test_create_requires_user(client, api_headers):
    response = await client.post(
        BASE, json={"title": "x", "description": "y"}, headers=api_headers,
    )
    assert response.status_code == 401


async def test_create_cleans_tags(client, make_user, auth_headers):
    user = await make_user()
    project = await _create(
        client, auth_headers(user), tags=[" defi ", "defi", "", "tools"],
    )
    assert project["tags"] == ["defi", "tools"]
    assert project["user_id"] == str(user.id)


async def test_invalid_url_rejected(client, make_user, auth_headers):
    user = await make_user()
    response = await client.post(
        BASE,
        json={"title": "x", "description": "y", "github_url": "ftp://nope"},
        headers=auth_headers(user),
    )
    assert response.status_code == 400


async def test_private_project_visibility(client, api_headers, make_user, auth_headers):
    owner = await make_user()
    stranger = await make_user()
    admin = await make_user(role="admin")
    private = await _create(client, auth_headers(owner), is_public=False)
    url = f"{BASE}/{private['id']}"

    anonymous = await client.get(url, headers=api_headers)
    other = await client.get(url, headers=auth_headers(stranger))
    mine = await client.get(url, headers=auth_headers(owner))
    as_admin = await client.get(url, headers=auth_headers(admin))

    assert anonymous.status_code == 404
    assert anonymous.json()["error"]["message"] == "Project not found or access denied"
    assert other.status_code == 404
    assert mine.status_code == 200
    assert as_admin.status_code == 200


async def test_list_public_filter_modes(client, api_headers, make_user, auth_headers):
    owner = await make_user()
    await _create(client, auth_headers(owner), title="Open")
    await _create(client, auth_headers(owner), title="Hidden", is_public=False)

    default = await client.get(BASE, headers=api_headers)
    anon_private = await client.get(f"{BASE}?public=false", headers=api_headers)
    owner_all = await client.get(f"{BASE}?public=all", headers=auth_headers(owner))
    owner_private = await client.get(f"{BASE}?public=false", headers=auth_headers(owner))

    assert [p["title"] for p in default.json()] == ["Open"]
    assert anon_private.json() == []
    assert {p["title"] for p in owner_all.json()} == {"Open", "Hidden"}
    assert [p["title"] for p in owner_private.json()] == ["Hidden"]


async def test_list_search_tags_and_owner(client, api_headers, make_user, auth_headers):
    alice = await make_user()
    bob = await make_user()
    await _create(client, auth_headers(alice), title="Vault", tags=["defi", "solidity"])
    await _create(client, auth_headers(alice), title="Dash", description="defi charts", tags=["defi"])
    await _create(client, auth_headers(bob), title="Game", tags=["gaming"])

    searched = await client.get(f"{BASE}?search=DEFI", headers=api_headers)
    tagged = await client.get(f"{BASE}?tags=defi,solidity", headers=api_headers)
    owned = await client.get(f"{BASE}?user_id={bob.id}", headers=api_headers)

    assert [p["title"] for p in searched.json()] == ["Dash"]
    assert [p["title"] for p in tagged.json()] == ["Vault"]
    assert [p["title"] for p in owned.json()] == ["Game"]


async def test_list_pagination(client, api_headers, make_user, auth_headers):
    owner = await make_user()
    for i in range(3):
        await _create(client, auth_headers(owner), title=f"P{i}")

    page = await client.get(f"{BASE}?limit=2&offset=1", headers=api_headers)

    assert len(page.json()) == 2


async def test_popular_tags(client, api_headers, make_user, auth_headers):
    owner = await make_user()
    await _create(client, auth_headers(owner), tags=["defi", "tools"])
    await _create(client, auth_headers(owner), tags=["defi"])
    await _create(client, auth_headers(owner), tags=["secret"], is_public=False)

    response = await client.get(f"{BASE}/tags/popular", headers=api_headers)

    assert response.json() == [
        {"tag": "defi", "count": 2},
        {"tag": "tools", "count": 1},
    ]


async def test_user_projects_respect_visibility(client, api_headers, make_user, auth_headers):
    owner = await make_user()
    await _create(client, auth_headers(owner), title="Open")
    await _create(client, auth_headers(owner), title="Hidden", is_public=False)

    anonymous = await client.get(f"{BASE}/user/{owner.id}", headers=api_headers)
    mine = await client.get(f"{BASE}/user/{owner.id}", headers=auth_headers(owner))

    assert len(anonymous.json()) == 1
    assert len(mine.json()) == 2


async def test_update_by_owner_only(client, make_user, auth_headers):
    owner = await make_user()
    stranger = await make_user()
    project = await _create(client, auth_headers(owner))
    url = f"{BASE}/{project['id']}"

    denied = await client.patch(url, json={"title": "Hijack"}, headers=auth_headers(stranger))
    updated = await client.patch(
        url, json={"title": "Renamed", "is_public": False}, headers=auth_headers(owner),
    )

    assert denied.status_code == 404
    assert updated.json()["title"] == "Renamed"
    assert updated.json()["is_public"] is False
    assert updated.json()["description"] == "Discord helper"


async def test_delete_project(client, api_headers, make_user, auth_headers, test_session_factory):
    owner = await make_user()
    project = await _create(client, auth_headers(owner))

    response = await client.delete(f"{BASE}/{project['id']}", headers=auth_headers(owner))

    assert response.json() == {"success": True}
    async with test_session_factory() as db:
        assert (await db.execute(select(Project))).scalars().all() == []


async def test_delete_unknown_project(client, make_user, auth_headers):
    user = await make_user()
    response = await client.delete(f"{BASE}/{uuid.uuid4()}", headers=auth_headers(user))
    assert response.status_code == 404
