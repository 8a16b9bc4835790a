"""Tests for building collaborators from Settings."""
from unittest.mock import patch

import pytest

from timeaudit.config import Settings
from timeaudit.remote.base import StaticUserProvider
from timeaudit.remote.sql_store import SqlActivityStore
from timeaudit.remote.supabase import SupabaseActivityStore, SupabaseUserProvider
from timeaudit.services import build_queue, build_store, build_user_provider, get_timezone


def settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestBuildStore:
    def test_supabase_backend(self):
        store = build_store(settings(supabase_url="https://x.supabase.co", supabase_key="k"))
        assert isinstance(store, SupabaseActivityStore)

    def test_supabase_requires_url(self):
        with pytest.raises(ValueError):
            build_store(settings(supabase_url=""))

    def test_sql_backend(self, engine):
        with patch("timeaudit.services.get_remote_engine", return_value=engine):
            store = build_store(settings(remote_backend="sql"))
        assert isinstance(store, SqlActivityStore)

    def test_unknown_backend(self):
        with pytest.raises(ValueError):
            build_store(settings(remote_backend="carrier-pigeon"))


class TestBuildUserProvider:
    def test_static_owner(self):
        provider = build_user_provider(settings(owner_id="user-1"))
        assert isinstance(provider, StaticUserProvider)
        assert provider.owner_id == "user-1"

    def test_token_uses_auth_lookup(self, engine):
        provider = build_user_provider(
            settings(supabase_url="https://x.supabase.co", access_token="jwt"), engine
        )
        assert isinstance(provider, SupabaseUserProvider)


class TestBuildQueue:
    def test_settings_applied(self, engine):
        queue = build_queue(
            settings(queue_slot_name="q", max_retries=5, confirmed_retention_hours=48),
            engine,
        )
        assert queue.slot_name == "q"
        assert queue.max_retries == 5
        assert queue.retention.total_seconds() == 48 * 3600


def test_timezone_from_settings():
    assert str(get_timezone(settings(timezone="Europe/Paris"))) == "Europe/Paris"
