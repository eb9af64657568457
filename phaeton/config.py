"""
phaeton.config — YAML Configuration Loader
===========================================

Reads ``config.yaml`` for **tunables only** (challenge TTL, verification
quota, retry policy, housekeeping interval).  Secrets — identity backend
keys, bot tokens, OAuth client credentials — never live in YAML; they come
from the environment (``.env`` in development) and are read by
:func:`load_platform_secrets` / :mod:`phaeton.api.deps`.

Usage::

    from phaeton.config import load_config

    cfg = load_config()               # reads ./config.yaml by default
    print(cfg.verify_rate_limit)      # 10
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class PhaetonConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str

    # Wallet sign-in
    nonce_ttl_seconds: int = 300

    # Task verification quota (per user, per platform)
    verify_rate_limit: int = 10
    verify_rate_window_seconds: int = 60

    # Upstream retry policy
    retry_max_attempts: int = 3
    retry_base_delay_seconds: float = 1.0

    # Housekeeping
    sweep_interval_seconds: int = 300

    # Account linking
    oauth_state_ttl_seconds: int = 600
    default_return_to: str = "/dashboard"


@dataclass(frozen=True, slots=True)
class PlatformSecrets:
    """Bot tokens and OAuth client credentials, read from the environment.

    Every field may be empty: a missing value is a configuration error only
    for the feature that needs it, and is reported when that feature is used.
    """

    discord_bot_token: str = ""
    telegram_bot_token: str = ""
    discord_client_id: str = ""
    discord_client_secret: str = ""
    twitter_client_id: str = ""
    twitter_client_secret: str = ""


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> PhaetonConfig:
    """Read *path* and return a :class:`PhaetonConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = PhaetonConfig(app_name="")
    return PhaetonConfig(
        app_name=raw["app_name"],
        nonce_ttl_seconds=int(raw.get("nonce_ttl_seconds", defaults.nonce_ttl_seconds)),
        verify_rate_limit=int(raw.get("verify_rate_limit", defaults.verify_rate_limit)),
        verify_rate_window_seconds=int(
            raw.get("verify_rate_window_seconds", defaults.verify_rate_window_seconds)
        ),
        retry_max_attempts=int(raw.get("retry_max_attempts", defaults.retry_max_attempts)),
        retry_base_delay_seconds=float(
            raw.get("retry_base_delay_seconds", defaults.retry_base_delay_seconds)
        ),
        sweep_interval_seconds=int(
            raw.get("sweep_interval_seconds", defaults.sweep_interval_seconds)
        ),
        oauth_state_ttl_seconds=int(
            raw.get("oauth_state_ttl_seconds", defaults.oauth_state_ttl_seconds)
        ),
        default_return_to=str(raw.get("default_return_to", defaults.default_return_to)),
    )


def load_platform_secrets() -> PlatformSecrets:
    """Snapshot platform credentials from the current environment."""
    return PlatformSecrets(
        discord_bot_token=os.getenv("DISCORD_BOT_TOKEN", "").strip(),
        telegram_bot_token=os.getenv("TELEGRAM_BOT_TOKEN", "").strip(),
        discord_client_id=os.getenv("DISCORD_CLIENT_ID", "").strip(),
        discord_client_secret=os.getenv("DISCORD_CLIENT_SECRET", "").strip(),
        twitter_client_id=os.getenv("TWITTER_CLIENT_ID", "").strip(),
        twitter_client_secret=os.getenv("TWITTER_CLIENT_SECRET", "").strip(),
    )
