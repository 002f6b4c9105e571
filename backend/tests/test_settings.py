"""Tests for application settings."""

import pytest
from pydantic import ValidationError

from app.config import Settings


class TestSettingsDefaults:
    """Test default values."""

    def test_aggregation_defaults(self):
        """Cells default to 7-character geohashes and 150 remembered ids."""
        s = Settings(database_url="sqlite+aiosqlite:///test.db")
        assert s.geohash_precision == 7
        assert s.seen_ids_cap == 150

    def test_request_limits_defaults(self):
        s = Settings(database_url="sqlite+aiosqlite:///test.db")
        assert s.max_buckets_per_request == 24
        assert s.max_store_ops_per_request == 50
        assert s.cas_max_attempts == 3
        assert s.merge_timeout_seconds == 10.0

    def test_store_backend_default(self):
        """The persistent SQL store is used unless configured otherwise."""
        s = Settings(database_url="sqlite+aiosqlite:///test.db")
        assert s.store_backend == "sql"

    def test_admin_token_unset_by_default(self):
        s = Settings(database_url="sqlite+aiosqlite:///test.db")
        assert s.admin_token is None


class TestSettingsValidation:
    """Test validators and constraints."""

    def test_blank_admin_token_is_unset(self):
        """An empty ADMIN_TOKEN must not become a valid credential."""
        s = Settings(database_url="sqlite+aiosqlite:///test.db", admin_token="   ")
        assert s.admin_token is None

    def test_admin_token_kept(self):
        s = Settings(database_url="sqlite+aiosqlite:///test.db", admin_token="s3cret")
        assert s.admin_token == "s3cret"

    def test_unknown_store_backend_rejected(self):
        with pytest.raises(ValidationError):
            Settings(database_url="sqlite+aiosqlite:///test.db", store_backend="redis")

    def test_precision_bounds(self):
        with pytest.raises(ValidationError):
            Settings(database_url="sqlite+aiosqlite:///test.db", geohash_precision=0)
        with pytest.raises(ValidationError):
            Settings(database_url="sqlite+aiosqlite:///test.db", geohash_precision=13)

    def test_op_budget_must_cover_one_cell(self):
        """One read and one write is the smallest useful budget."""
        with pytest.raises(ValidationError):
            Settings(database_url="sqlite+aiosqlite:///test.db", max_store_ops_per_request=1)

    def test_timeout_can_be_disabled(self):
        s = Settings(database_url="sqlite+aiosqlite:///test.db", merge_timeout_seconds=None)
        assert s.merge_timeout_seconds is None

    def test_cors_origins_comma_separated(self):
        """CORS origins can be given as a comma-separated string."""
        s = Settings(
            database_url="sqlite+aiosqlite:///test.db",
            cors_origins="https://map.example.org, https://example.org",
        )
        assert s.cors_origins == ["https://map.example.org", "https://example.org"]

    def test_cors_origins_list(self):
        s = Settings(database_url="sqlite+aiosqlite:///test.db", cors_origins=["https://a.test"])
        assert s.cors_origins == ["https://a.test"]
