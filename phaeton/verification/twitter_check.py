"""
phaeton.verification.twitter_check — Twitter follow / like / retweet / quote
=============================================================================

Uses the user's own OAuth 2.0 bearer token (stored on their connection) to
read the Twitter API v2:

* ``follow``  — resolve ``username`` → id, then
  ``GET /users/{me}/following/{target}``; unknown target or 404 → not following
* ``like``    — ``GET /users/{me}/liked_tweets``, look for the tweet id
* ``retweet`` — ``GET /tweets/{id}/retweeted_by``, look for the user's id
* ``quote``   — ``GET /users/{me}/tweets`` with ``referenced_tweets``, look
  for a ``quoted`` reference to the tweet

Only the most recent page (100 items) is inspected for list endpoints.
"""

from __future__ import annotations

import logging
import re
from typing import Any

import httpx

from phaeton.constants import TWITTER_API, Platform, TwitterAction
from phaeton.errors import InvalidTaskParameters, TokenExpired
from phaeton.services.connection_service import ConnectionInfo
from phaeton.verification.base import (
    PlatformCheck,
    PlatformConfigError,
    PlatformError,
    first_param,
)

logger = logging.getLogger(__name__)

_TWEET_ID_RE = re.compile(r"status/(\d+)")
_USERNAME_RE = re.compile(r"^[A-Za-z0-9_]{1,15}$")

PAGE_SIZE = 100


def extract_tweet_id(tweet_url: str) -> str | None:
    """Pull the numeric id out of a ``.../status/<id>`` URL (or a bare id)."""
    tweet_url = tweet_url.strip()
    if tweet_url.isdigit():
        return tweet_url
    match = _TWEET_ID_RE.search(tweet_url)
    return match.group(1) if match else None


class TwitterActionCheck(PlatformCheck):
    platform = Platform.TWITTER
    success_message = "Twitter action verified successfully"
    failure_message = "Could not verify Twitter action. Please make sure you completed the task."
    error_message = "Failed to verify Twitter action"
    requires_user_token = True

    def validate(self, action: str | None, parameters: dict[str, Any]) -> dict[str, Any]:
        try:
            twitter_action = TwitterAction(action)
        except ValueError:
            raise InvalidTaskParameters(f"Unsupported Twitter action: {action}") from None

        if twitter_action is TwitterAction.FOLLOW:
            username = first_param(parameters, "username")
            if username is None:
                raise InvalidTaskParameters("Username is required")
            username = username.removeprefix("@")
            if not _USERNAME_RE.match(username):
                raise InvalidTaskParameters("Invalid Twitter username")
            return {"action": twitter_action, "username": username}

        tweet_url = first_param(parameters, "tweetUrl")
        if tweet_url is None:
            raise InvalidTaskParameters("Tweet URL is required")
        tweet_id = extract_tweet_id(tweet_url)
        if tweet_id is None:
            raise InvalidTaskParameters("Invalid tweet URL")
        return {"action": twitter_action, "tweet_id": tweet_id}

    async def check(
        self,
        connection: ConnectionInfo,
        action: str | None,
        params: dict[str, Any],
    ) -> bool:
        headers = {"Authorization": f"Bearer {connection.access_token}"}
        me = connection.platform_user_id

        match params["action"]:
            case TwitterAction.FOLLOW:
                return await self._check_follow(headers, me, params["username"])
            case TwitterAction.LIKE:
                data = await self._get_list(
                    f"{TWITTER_API}/users/{me}/liked_tweets",
                    headers,
                    {"tweet.fields": "id", "max_results": PAGE_SIZE},
                )
                return any(t.get("id") == params["tweet_id"] for t in data)
            case TwitterAction.RETWEET:
                data = await self._get_list(
                    f"{TWITTER_API}/tweets/{params['tweet_id']}/retweeted_by",
                    headers,
                    {"max_results": PAGE_SIZE},
                )
                return any(u.get("id") == me for u in data)
            case TwitterAction.QUOTE:
                data = await self._get_list(
                    f"{TWITTER_API}/users/{me}/tweets",
                    headers,
                    {"tweet.fields": "referenced_tweets", "max_results": PAGE_SIZE},
                )
                return any(
                    ref.get("type") == "quoted" and ref.get("id") == params["tweet_id"]
                    for tweet in data
                    for ref in tweet.get("referenced_tweets") or []
                )
        raise InvalidTaskParameters(f"Unsupported Twitter action: {params['action']}")

    # -------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------
    def _raise_for_status(self, resp: httpx.Response) -> None:
        if resp.status_code == 401:
            raise TokenExpired(self.platform)
        if resp.status_code == 403:
            raise PlatformConfigError("Twitter app lacks access to this endpoint (HTTP 403)")
        raise PlatformError(f"Twitter API error: HTTP {resp.status_code}")

    async def _get_list(
        self,
        url: str,
        headers: dict[str, str],
        params: dict[str, Any],
    ) -> list[dict[str, Any]]:
        resp = await self._send("GET", url, headers=headers, params=params)
        if resp.status_code != 200:
            self._raise_for_status(resp)
        items = self._json(resp).get("data")
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    async def _check_follow(self, headers: dict[str, str], me: str, username: str) -> bool:
        resp = await self._send(
            "GET", f"{TWITTER_API}/users/by/username/{username}", headers=headers
        )
        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            self._raise_for_status(resp)
        target = self._json(resp).get("data")
        if not isinstance(target, dict) or not target.get("id"):
            # Twitter answers 200 with an ``errors`` array for unknown users
            return False

        resp = await self._send(
            "GET", f"{TWITTER_API}/users/{me}/following/{target['id']}", headers=headers
        )
        if resp.status_code == 404:
            return False
        if resp.status_code != 200:
            self._raise_for_status(resp)
        data = self._json(resp).get("data")
        return isinstance(data, dict) and data.get("following") is True
