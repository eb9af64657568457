"""
tests/test_startup_config.py — Environment validation and YAML config
======================================================================
"""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from sqlalchemy import create_engine, inspect

from phaeton.api import deps
from phaeton.config import PhaetonConfig, load_config, load_platform_secrets
from phaeton.database.engine import init_db


class TestIdentityEnv:
    def test_missing_url_raises(self):
        with patch.dict(os.environ, {"SUPABASE_URL": "", "SUPABASE_ANON_KEY": "k"}):
            with pytest.raises(RuntimeError, match="SUPABASE_URL"):
                deps._load_identity_env()

    def test_both_missing_named_in_error(self):
        with patch.dict(os.environ, {"SUPABASE_URL": "", "SUPABASE_ANON_KEY": ""}):
            with pytest.raises(RuntimeError, match="SUPABASE_URL and SUPABASE_ANON_KEY"):
                deps._load_identity_env()

    def test_non_http_url_raises(self):
        with patch.dict(os.environ, {"SUPABASE_URL": "identity.test", "SUPABASE_ANON_KEY": "k"}):
            with pytest.raises(RuntimeError, match="http"):
                deps._load_identity_env()

    def test_trailing_slash_is_stripped(self):
        with patch.dict(
            os.environ, {"SUPABASE_URL": " https://identity.test/ ", "SUPABASE_ANON_KEY": "k"}
        ):
            assert deps._load_identity_env() == ("https://identity.test", "k")


class TestLoadConfig:
    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")

    def test_defaults(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("app_name: Phaeton\n", encoding="utf-8")
        cfg = load_config(path)
        assert cfg == PhaetonConfig(app_name="Phaeton")
        assert cfg.nonce_ttl_seconds == 300
        assert (cfg.verify_rate_limit, cfg.verify_rate_window_seconds) == (10, 60)
        assert cfg.retry_max_attempts == 3

    def test_app_name_required(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text("verify_rate_limit: 5\n", encoding="utf-8")
        with pytest.raises(KeyError):
            load_config(path)

    def test_overrides(self, tmp_path: Path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "app_name: Phaeton\nverify_rate_limit: 5\nretry_base_delay_seconds: 0.5\n",
            encoding="utf-8",
        )
        cfg = load_config(path)
        assert cfg.verify_rate_limit == 5
        assert cfg.retry_base_delay_seconds == 0.5

    def test_test_config_is_loaded_by_the_app(self):
        deps.get_config.cache_clear()
        try:
            assert deps.get_config().verify_rate_limit == 3
        finally:
            deps.get_config.cache_clear()


class TestPlatformSecrets:
    def test_read_from_environment(self):
        with patch.dict(
            os.environ,
            {"DISCORD_BOT_TOKEN": " bot ", "TWITTER_CLIENT_ID": "tw"},
            clear=False,
        ):
            secrets = load_platform_secrets()
        assert secrets.discord_bot_token == "bot"
        assert secrets.twitter_client_id == "tw"

    def test_unset_values_are_empty(self):
        names = ["TELEGRAM_BOT_TOKEN", "DISCORD_CLIENT_SECRET"]
        with patch.dict(os.environ, {}, clear=False):
            for name in names:
                os.environ.pop(name, None)
            secrets = load_platform_secrets()
        assert secrets.telegram_bot_token == ""
        assert secrets.discord_client_secret == ""


class TestInitDb:
    def test_creates_tables_and_is_repeatable(self):
        engine = create_engine("sqlite://")
        init_db(engine)
        init_db(engine)
        assert set(inspect(engine).get_table_names()) >= {"social_connections", "oauth_states"}
