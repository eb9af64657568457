"""
tests/test_task_routes.py — Task verification endpoints
========================================================
Quota is 3 calls per 60 s in tests/config.test.yaml; retry delay is 0.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from phaeton.constants import DISCORD_API, TELEGRAM_API, TWITTER_API
from phaeton.services.connection_service import upsert_connection

DISCORD_URL = f"{DISCORD_API}/guilds/777/members/8001"


def link(api, platform: str, platform_user_id: str, **kwargs):
    upsert_connection(
        api.engine,
        user_id="user-1",
        platform=platform,
        platform_user_id=platform_user_id,
        **kwargs,
    )


class TestAccess:
    @pytest.mark.parametrize("platform", ["discord", "telegram", "twitter"])
    def test_requires_session(self, api, platform):
        resp = api.client.post(f"/api/tasks/verify-{platform}", json={})
        assert resp.status_code == 401
        assert api.upstream.requests == []

    def test_not_connected(self, api):
        api.login()
        resp = api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})

        assert resp.status_code == 400
        detail = resp.json()["detail"]
        assert detail["error"] == "not_connected"
        assert detail["message"] == "Discord account not connected"
        assert api.upstream.requests == []


class TestDiscordTask:
    @pytest.fixture(autouse=True)
    def _linked(self, api):
        api.login()
        link(api, "discord", "8001")

    def test_member(self, api):
        api.upstream.add("GET", DISCORD_URL, 200)
        resp = api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})

        assert resp.status_code == 200
        assert resp.json() == {
            "verified": True,
            "message": "Discord membership verified successfully",
            "remaining": 2,
        }

    def test_guild_id_alias_and_numeric_id(self, api):
        api.upstream.add("GET", DISCORD_URL, 200)
        resp = api.client.post("/api/tasks/verify-discord", json={"guildId": 777})
        assert resp.status_code == 200

    def test_not_member(self, api):
        api.upstream.add("GET", DISCORD_URL, 404)
        resp = api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})

        assert resp.status_code == 400
        body = resp.json()
        assert body["verified"] is False
        assert body["message"].startswith("You are not a member of this Discord server")

    def test_missing_server_id(self, api):
        resp = api.client.post("/api/tasks/verify-discord", json={})
        assert resp.status_code == 400
        assert resp.json()["detail"]["message"] == "Server ID is required"
        assert api.upstream.requests == []

    def test_upstream_outage(self, api):
        api.upstream.add("GET", DISCORD_URL, 503)
        resp = api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})

        assert resp.status_code == 500
        assert resp.json()["detail"]["message"] == "Failed to verify Discord membership"
        assert len(api.upstream.requests) == 3

    def test_quota(self, api):
        api.upstream.add("GET", DISCORD_URL, 404)
        remaining = [
            api.client.post("/api/tasks/verify-discord", json={"serverId": "777"}).json()["remaining"]
            for _ in range(3)
        ]
        assert remaining == [2, 1, 0]

        resp = api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})
        assert resp.status_code == 429
        detail = resp.json()["detail"]
        assert detail["error"] == "rate_limit_exceeded"
        assert 1 <= detail["retry_after"] <= 60
        assert resp.headers["retry-after"] == str(detail["retry_after"])
        assert len(api.upstream.requests) == 3

    def test_quota_is_checked_before_the_body(self, api):
        api.upstream.add("GET", DISCORD_URL, 404)
        for _ in range(3):
            api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})
        resp = api.client.post(
            "/api/tasks/verify-discord", content="{", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 429

    def test_quota_is_per_platform(self, api):
        api.upstream.add("GET", DISCORD_URL, 404)
        for _ in range(4):
            api.client.post("/api/tasks/verify-discord", json={"serverId": "777"})

        link(api, "telegram", "5550001")
        api.upstream.add(
            "POST",
            f"{TELEGRAM_API}/bot",
            (200, {"ok": True, "result": {"status": "member"}}),
        )
        resp = api.client.post("/api/tasks/verify-telegram", json={"channelUsername": "phaeton"})
        assert resp.status_code == 200

    def test_invalid_json(self, api):
        resp = api.client.post(
            "/api/tasks/verify-discord", content="{", headers={"content-type": "application/json"}
        )
        assert resp.status_code == 400
        assert api.upstream.requests == []


class TestTelegramTask:
    def test_member(self, api):
        api.login()
        link(api, "telegram", "5550001")
        api.upstream.add(
            "POST",
            f"{TELEGRAM_API}/bot",
            (200, {"ok": True, "result": {"status": "administrator"}}),
        )
        resp = api.client.post("/api/tasks/verify-telegram", json={"channelId": -1001234})

        assert resp.status_code == 200
        assert resp.json()["message"] == "Telegram membership verified successfully"

    def test_bot_cannot_see_chat(self, api):
        api.login()
        link(api, "telegram", "5550001")
        api.upstream.add(
            "POST",
            f"{TELEGRAM_API}/bot",
            (400, {"ok": False, "description": "Bad Request: chat not found"}),
        )
        resp = api.client.post("/api/tasks/verify-telegram", json={"channelUsername": "phaeton"})

        assert resp.status_code == 500
        assert len(api.upstream.requests) == 1


class TestTwitterTask:
    TWEET_URL = "https://x.com/phaeton/status/1790000000000000001"

    @pytest.fixture(autouse=True)
    def _linked(self, api):
        api.login()

    def test_like(self, api):
        link(api, "twitter", "900", access_token="user-token")
        api.upstream.add(
            "GET",
            f"{TWITTER_API}/users/900/liked_tweets",
            (200, {"data": [{"id": "1790000000000000001"}]}),
        )
        resp = api.client.post(
            "/api/tasks/verify-twitter", json={"action": "like", "tweetUrl": self.TWEET_URL}
        )
        assert resp.status_code == 200
        assert resp.json()["verified"] is True

    def test_bad_tweet_url(self, api):
        link(api, "twitter", "900", access_token="user-token")
        resp = api.client.post(
            "/api/tasks/verify-twitter", json={"action": "like", "tweetUrl": "https://x.com/a"}
        )
        assert resp.status_code == 400
        assert resp.json()["detail"]["message"] == "Invalid tweet URL"
        assert api.upstream.requests == []

    def test_unsupported_action(self, api):
        link(api, "twitter", "900", access_token="user-token")
        resp = api.client.post("/api/tasks/verify-twitter", json={"action": "bookmark"})
        assert resp.status_code == 400

    def test_expired_token(self, api):
        link(
            api,
            "twitter",
            "900",
            access_token="user-token",
            token_expires_at=datetime.now(UTC) - timedelta(hours=1),
        )
        resp = api.client.post(
            "/api/tasks/verify-twitter", json={"action": "follow", "username": "phaeton"}
        )
        assert resp.status_code == 401
        assert resp.json()["detail"]["error"] == "token_expired"
        assert api.upstream.requests == []
