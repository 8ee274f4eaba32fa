"""User Routes — member directory access rules and masking."""

import uuid


async def test_listing_requires_jwt(client, api_headers):
    response = await client.get("/api/v1/users", headers=api_headers)
    assert response.status_code == 401


async def test_listing_forbidden_for_authenticated_role(client, make_user, auth_headers):
    user = await make_user()
    response = await client.get("/api/v1/users", headers=auth_headers(user))
    assert response.status_code == 403


async def test_member_sees_masked_wallets(client, make_user, auth_headers):
    member = await make_user(role="member")
    await make_user(
        platform="evm",
        identity="0x00000000000000000000000000000000000000aa",
        address="0x00000000000000000000000000000000000000aa",
    )

    response = await client.get(
        "/api/v1/users?include_identities=true", headers=auth_headers(member),
    )

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 2
    assert (body["limit"], body["offset"]) == (50, 0)
    wallet_user = next(u for u in body["users"] if u["address"])
    assert wallet_user["address"] == "***masked***"
    assert wallet_user["identities"][0]["identity"] == "***masked***"
    discord_user = next(u for u in body["users"] if u["id"] == str(member.id))
    assert discord_user["identities"][0]["identity"].startswith("discord-")


async def test_role_filter_and_members_endpoint(client, make_user, auth_headers):
    admin = await make_user(role="admin")
    await make_user(role="member")
    await make_user()

    admins = await client.get("/api/v1/users?role=admin", headers=auth_headers(admin))
    members = await client.get("/api/v1/users/members", headers=auth_headers(admin))

    assert admins.json()["total"] == 1
    assert members.json()["total"] == 2
    assert "identities" not in members.json()["users"][0]


async def test_pagination(client, make_user, auth_headers):
    admin = await make_user(role="admin")
    for _ in range(3):
        await make_user()

    page = await client.get(
        "/api/v1/users?limit=2&offset=2", headers=auth_headers(admin),
    )

    assert page.json()["total"] == 4
    assert len(page.json()["users"]) == 2


async def test_get_single_user(client, api_headers, make_user):
    user = await make_user(identity="single")

    response = await client.get(f"/api/v1/users/{user.id}", headers=api_headers)

    assert response.status_code == 200
    assert response.json()["identities"][0]["identity"] == "single"


async def test_get_unknown_user(client, api_headers):
    response = await client.get(f"/api/v1/users/{uuid.uuid4()}", headers=api_headers)
    assert response.status_code == 404
