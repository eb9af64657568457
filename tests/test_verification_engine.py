"""
tests/test_verification_engine.py — VerificationEngine pipeline
================================================================
Connection lookup, expiry and configuration gates, and the retry policy
around each platform call.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta

import pytest
from conftest import TEST_SECRETS, FakeUpstream, run_async

from phaeton.constants import DISCORD_API, TELEGRAM_API, TWITTER_API
from phaeton.errors import (
    InvalidTaskParameters,
    NotConnected,
    TokenExpired,
    UpstreamUnavailable,
)
from phaeton.services.connection_service import upsert_connection
from phaeton.verification.engine import VerificationEngine

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
DISCORD_URL = f"{DISCORD_API}/guilds/777/members/8001"


class TestVerificationEngine:
    @pytest.fixture(autouse=True)
    def _engine(self, db_engine, upstream: FakeUpstream):
        self.db = db_engine
        self.upstream = upstream
        self.sleeps: list[float] = []

        async def fake_sleep(delay: float) -> None:
            self.sleeps.append(delay)

        self.fake_sleep = fake_sleep
        self.engine = self.build(TEST_SECRETS)

    def build(self, secrets):
        return VerificationEngine(
            self.db,
            self.upstream.client(),
            secrets,
            sleep=self.fake_sleep,
            now=lambda: NOW,
        )

    def link(self, platform: str, platform_user_id: str, **kwargs):
        upsert_connection(
            self.db,
            user_id="user-1",
            platform=platform,
            platform_user_id=platform_user_id,
            **kwargs,
        )

    def verify(self, platform: str, action=None, **params):
        return run_async(self.engine.verify("user-1", platform, action, params))

    # -- gates -------------------------------------------------------------
    def test_not_connected_makes_no_request(self):
        with pytest.raises(NotConnected) as exc_info:
            self.verify("discord", serverId="777")
        assert exc_info.value.to_detail()["platform"] == "discord"
        assert self.upstream.requests == []

    def test_invalid_parameters_checked_before_connection(self):
        with pytest.raises(InvalidTaskParameters):
            self.verify("discord")
        assert self.upstream.requests == []

    def test_unsupported_platform(self):
        with pytest.raises(InvalidTaskParameters):
            self.verify("myspace", serverId="777")

    def test_expired_token_makes_no_request(self):
        self.link("twitter", "900", access_token="t", token_expires_at=NOW - timedelta(minutes=1))
        with pytest.raises(TokenExpired):
            self.verify("twitter", "like", tweetUrl="1790000000000000001")
        assert self.upstream.requests == []

    def test_twitter_without_user_token_is_expired(self):
        self.link("twitter", "900")
        with pytest.raises(TokenExpired):
            self.verify("twitter", "like", tweetUrl="1790000000000000001")

    def test_missing_bot_token_is_configuration_error(self):
        self.link("telegram", "5550001")
        self.engine = self.build(replace(TEST_SECRETS, telegram_bot_token=""))
        with pytest.raises(UpstreamUnavailable) as exc_info:
            self.verify("telegram", channelUsername="phaeton")
        assert exc_info.value.configuration
        assert exc_info.value.message == "Telegram bot not configured"
        assert self.upstream.requests == []

    # -- answers -----------------------------------------------------------
    def test_member_is_verified(self):
        self.link("discord", "8001")
        self.upstream.add("GET", DISCORD_URL, 200)
        assert self.verify("discord", serverId="777") is True
        assert self.sleeps == []

    def test_definitive_no_is_not_retried(self):
        self.link("discord", "8001")
        self.upstream.add("GET", DISCORD_URL, 404)
        assert self.verify("discord", serverId="777") is False
        assert len(self.upstream.requests) == 1

    def test_answers_are_not_cached(self):
        self.link("discord", "8001")
        self.upstream.add("GET", DISCORD_URL, 404, 200)
        assert self.verify("discord", serverId="777") is False
        assert self.verify("discord", serverId="777") is True
        assert len(self.upstream.requests) == 2

    # -- retries -----------------------------------------------------------
    def test_transient_failures_are_retried_with_backoff(self):
        self.link("discord", "8001")
        self.upstream.add("GET", DISCORD_URL, 502)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            self.verify("discord", serverId="777")
        assert exc_info.value.message == "Failed to verify Discord membership"
        assert not exc_info.value.configuration
        assert len(self.upstream.requests) == 3
        assert self.sleeps == [1.0, 2.0]

    def test_recovers_after_one_failure(self):
        self.link("telegram", "5550001")
        self.upstream.add(
            "POST",
            f"{TELEGRAM_API}/bot{TEST_SECRETS.telegram_bot_token}/getChatMember",
            (500, {"ok": False, "description": "Internal Server Error"}),
            (200, {"ok": True, "result": {"status": "member"}}),
        )
        assert self.verify("telegram", channelUsername="phaeton") is True
        assert self.sleeps == [1.0]

    def test_configuration_error_is_not_retried(self):
        self.link("discord", "8001")
        self.upstream.add("GET", DISCORD_URL, 403)
        with pytest.raises(UpstreamUnavailable) as exc_info:
            self.verify("discord", serverId="777")
        assert exc_info.value.configuration
        assert len(self.upstream.requests) == 1
        assert self.sleeps == []

    def test_revoked_twitter_token_is_not_retried(self):
        self.link("twitter", "900", access_token="t", token_expires_at=NOW + timedelta(hours=1))
        self.upstream.add("GET", f"{TWITTER_API}/users/900/liked_tweets", 401)
        with pytest.raises(TokenExpired):
            self.verify("twitter", "like", tweetUrl="1790000000000000001")
        assert len(self.upstream.requests) == 1
