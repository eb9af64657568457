"""
phaeton.constants — Shared Constants
=====================================

Cookie names and lifetimes, platform identifiers and API base URLs.
Import from here instead of duplicating literals across routers and checks.
"""

from __future__ import annotations

import enum

# ---------------------------------------------------------------------------
# Session cookies
# ---------------------------------------------------------------------------
ACCESS_TOKEN_COOKIE = "sb-access-token"
REFRESH_TOKEN_COOKIE = "sb-refresh-token"

ACCESS_TOKEN_FALLBACK_MAX_AGE = 60 * 60            # 1 hour
REFRESH_TOKEN_MAX_AGE = 60 * 60 * 24 * 30          # 30 days


# ---------------------------------------------------------------------------
# Social platforms
# ---------------------------------------------------------------------------
class Platform(enum.StrEnum):
    """Platforms a user can link and be verified against."""
    DISCORD = "discord"
    TELEGRAM = "telegram"
    TWITTER = "twitter"

    @property
    def label(self) -> str:
        return self.value.capitalize()


class TwitterAction(enum.StrEnum):
    FOLLOW = "follow"
    LIKE = "like"
    RETWEET = "retweet"
    QUOTE = "quote"


# Membership actions for Discord and Telegram tasks
JOIN_ACTION = "join"

# Telegram chat-member statuses that count as "in the chat"
TELEGRAM_MEMBER_STATUSES: frozenset[str] = frozenset({"creator", "administrator", "member"})


# ---------------------------------------------------------------------------
# Upstream APIs
# ---------------------------------------------------------------------------
DISCORD_API = "https://discord.com/api/v10"
DISCORD_AUTHORIZE_URL = "https://discord.com/api/oauth2/authorize"
DISCORD_OAUTH_SCOPE = "identify guilds guilds.members.read"

TELEGRAM_API = "https://api.telegram.org"
TELEGRAM_AUTH_MAX_AGE_SECONDS = 60 * 60 * 24      # login widget payloads expire after 24h

TWITTER_API = "https://api.twitter.com/2"
TWITTER_AUTHORIZE_URL = "https://twitter.com/i/oauth2/authorize"
TWITTER_OAUTH_SCOPE = "tweet.read users.read follows.read like.read"

# Wallet users are provisioned in the identity backend with a synthetic e-mail
WALLET_EMAIL_DOMAIN = "wallet.phaeton"
