"""Tests for engine and database settings."""

import pytest
from pydantic import ValidationError

from config.database import DatabaseSettings
from config.settings import Settings, get_settings


class TestSettings:

    def test_defaults(self, settings):
        assert settings.impersonation_default_ttl_seconds == 4 * 60 * 60
        assert settings.impersonation_max_ttl_seconds == 8 * 60 * 60
        assert settings.default_trial_days == 14
        assert settings.sub_account_trial_days == 30
        assert settings.franchise_sub_account_limit == 50
        assert settings.is_production is False

    def test_default_ttl_cannot_exceed_maximum(self):
        with pytest.raises(ValidationError):
            Settings(
                _env_file=None,
                impersonation_default_ttl_seconds=7200,
                impersonation_max_ttl_seconds=3600,
            )

    def test_token_entropy_floor(self):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, impersonation_token_bytes=8)

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("TENANCY_DEFAULT_TRIAL_DAYS", "7")
        monkeypatch.setenv("TENANCY_ENVIRONMENT", "production")

        settings = get_settings()

        assert settings.default_trial_days == 7
        assert settings.is_production is True


class TestDatabaseSettings:

    def test_explicit_url_wins(self):
        db = DatabaseSettings(_env_file=None, url="sqlite://")
        assert db.sync_url == "sqlite://"
        assert db.is_sqlite is True

    def test_postgres_url_from_parts(self):
        db = DatabaseSettings(
            _env_file=None,
            driver="postgresql+psycopg2",
            host="db.internal",
            port=5433,
            name="tenancy",
            user="svc",
            password="pw",
        )
        assert db.is_sqlite is False
        assert db.sync_url == "postgresql+psycopg2://svc:pw@db.internal:5433/tenancy"

    def test_isolation_level_is_normalized(self):
        db = DatabaseSettings(_env_file=None, isolation_level="repeatable_read")
        assert db.isolation_level == "REPEATABLE READ"

    def test_unknown_isolation_level_rejected(self):
        with pytest.raises(ValidationError):
            DatabaseSettings(_env_file=None, isolation_level="CHAOS")

    def test_in_memory_and_pool_options(self):
        memory = DatabaseSettings(_env_file=None, url="sqlite:///:memory:")
        server = DatabaseSettings(_env_file=None, driver="postgresql+psycopg2", pool_size=3)

        assert memory.is_memory is True
        assert server.is_memory is False
        assert server.pool_options()["pool_size"] == 3
