"""Cartel API Client — async httpx wrapper used by the Discord bot and other API-key clients.

Invariants:
    - Every request carries X-API-Key; Authorization is added when an access token is set
    - Non-2xx responses raise CartelClientError with the status and the envelope's error code
    - Lookups that answer 404 return None instead of raising
    - Transport errors (timeouts, refused connections) propagate as httpx exceptions

Design Decisions:
    - One pooled httpx.AsyncClient per CartelClient, closed by `async with` or aclose():
      bot workers issue many small requests
    - Injectable transport: tests run the client against the ASGI app in-process
"""

from typing import Any

import httpx

DEFAULT_TIMEOUT = 10.0


class CartelClientError(Exception):
    """API answered with a non-2xx status."""

    def __init__(self, status_code: int, code: str | None, message: str):
        super().__init__(f"API error ({status_code}) {code or ''}: {message}".strip())
        self.status_code = status_code
        self.code = code
        self.message = message


class CartelClient:
    def __init__(
        self,
        base_url: str,
        api_key: str,
        access_token: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        headers = {"X-API-Key": api_key}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "CartelClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict | None = None,
        missing_ok: bool = False,
    ) -> Any:
        response = await self._http.request(method, path, json=json, params=params)
        if missing_ok and response.status_code == 404:
            return None
        if not response.is_success:
            raise _error_from(response)
        return response.json()

    # ─── Vanishing channels ──────────────────────────────────────

    async def set_vanishing_channel(self, channel_id: str, guild_id: str, duration: int) -> dict:
        return await self._request(
            "POST", "/api/v1/discord/vanish",
            json={"channel_id": channel_id, "guild_id": guild_id, "duration": duration},
        )

    async def remove_vanishing_channel(self, channel_id: str) -> dict:
        return await self._request("DELETE", f"/api/v1/discord/vanish/{channel_id}")

    async def list_vanishing_channels(self, guild_id: str | None = None) -> list[dict]:
        params = {"guild_id": guild_id} if guild_id else None
        return await self._request("GET", "/api/v1/discord/vanish", params=params)

    async def get_vanishing_channel(self, channel_id: str) -> dict | None:
        return await self._request(
            "GET", f"/api/v1/discord/vanish/{channel_id}", missing_ok=True,
        )

    async def record_deletions(self, channel_id: str, deleted_count: int) -> int:
        """Add to the channel's deleted-message counter; returns the new total."""
        result = await self._request(
            "PATCH", f"/api/v1/discord/vanish/{channel_id}/stats",
            json={"deleted_count": deleted_count},
        )
        return result["new_count"]

    # ─── Channel settings ────────────────────────────────────────

    async def get_channel_settings(self, guild_id: str) -> dict[str, str]:
        result = await self._request("GET", f"/api/v1/discord/channels/{guild_id}")
        return result["settings"]

    async def set_channel(self, guild_id: str, key: str, channel_id: str) -> dict:
        return await self._request(
            "PUT", f"/api/v1/discord/channels/{guild_id}/{key}",
            json={"channel_id": channel_id},
        )

    # ─── Practice sessions ───────────────────────────────────────

    async def start_session(self, discord_id: str, notes: str | None = None) -> dict:
        return await self._request(
            "POST", "/api/v1/sessions/practice/start",
            json={"discord_id": discord_id, "notes": notes},
        )

    async def stop_session(self, discord_id: str) -> dict:
        return await self._request(
            "POST", "/api/v1/sessions/practice/stop", json={"discord_id": discord_id},
        )

    async def daily_total(self, discord_id: str) -> int:
        """Seconds practiced today."""
        result = await self._request(
            "GET", f"/api/v1/sessions/practice/stats/daily/discord/{discord_id}",
        )
        return result["total_duration"]

    async def weekly_stats(self, discord_id: str) -> dict[str, int]:
        return await self._request(
            "GET", f"/api/v1/sessions/practice/stats/weekly/discord/{discord_id}",
        )

    async def monthly_stats(self, discord_id: str) -> dict[str, int]:
        return await self._request(
            "GET", f"/api/v1/sessions/practice/stats/monthly/discord/{discord_id}",
        )

    async def leaderboard(self) -> list[dict]:
        return await self._request("GET", "/api/v1/sessions/practice/leaderboard")

    async def total_hours(self) -> float:
        result = await self._request("GET", "/api/v1/sessions/practice/total-hours")
        return result["total_hours"]

    # ─── Applications ────────────────────────────────────────────

    async def create_application(self, **fields: Any) -> dict:
        """Submit an application; returns {"id", "application_number"}."""
        return await self._request("POST", "/api/v1/users/applications", json=fields)

    async def pending_applications(self) -> list[dict]:
        return await self._request("GET", "/api/v1/users/applications/pending")

    async def application_by_message(self, message_id: str) -> dict | None:
        return await self._request(
            "GET", f"/api/v1/users/applications/by-message/{message_id}", missing_ok=True,
        )

    async def application_by_number(self, number: int) -> dict | None:
        return await self._request(
            "GET", f"/api/v1/users/applications/by-number/{number}", missing_ok=True,
        )

    async def update_application_status(self, application_id: str, status: str) -> dict:
        """Approve or reject; needs an access token."""
        return await self._request(
            "PATCH", f"/api/v1/users/applications/{application_id}/status",
            json={"status": status},
        )

    async def delete_application(self, application_id: str) -> dict:
        return await self._request("DELETE", f"/api/v1/users/applications/{application_id}")

    async def add_vote(
        self, application_id: str, user_id: str, user_name: str, vote_type: str,
    ) -> dict:
        result = await self._request(
            "POST", f"/api/v1/users/applications/{application_id}/votes",
            json={"user_id": user_id, "user_name": user_name, "vote_type": vote_type},
        )
        return result["vote"]

    async def list_votes(self, application_id: str) -> list[dict]:
        return await self._request(
            "GET", f"/api/v1/users/applications/{application_id}/votes",
        )

    # ─── Identities ──────────────────────────────────────────────

    async def user_id_by_identity(self, platform: str, identity: str) -> str | None:
        result = await self._request(
            "GET", f"/api/v1/users/id/by-{platform}/{identity}", missing_ok=True,
        )
        return result["user_id"] if result else None

    async def user_id_by_discord(self, discord_id: str) -> str | None:
        return await self.user_id_by_identity("discord", discord_id)

    async def ensure_user(
        self, platform: str, identity: str, metadata: dict | None = None,
    ) -> str:
        """Find or create the user behind an identity; returns the user id."""
        result = await self._request(
            "POST", "/api/v1/users/id",
            json={"platform": platform, "identity": identity, "metadata": metadata},
        )
        return result["user_id"]


def _error_from(response: httpx.Response) -> CartelClientError:
    try:
        body = response.json()
    except ValueError:
        body = None
    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        error = {}
    return CartelClientError(
        response.status_code,
        error.get("code"),
        error.get("message") or response.text,
    )
