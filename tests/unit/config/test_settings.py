"""Tests for application settings."""

import pytest
from pydantic import ValidationError as PydanticValidationError

from medilocker.config import Settings
from medilocker.storage import LocalBlobStore, S3BlobStore, build_blob_store


class TestSettings:
    """Environment-driven configuration."""

    def test_defaults(self, monkeypatch):
        """Documented defaults apply when nothing is set."""
        monkeypatch.setenv("JWT_SECRET_KEY", "a-real-secret")
        settings = Settings(_env_file=None)

        assert settings.default_expiry_days == 30
        assert settings.max_expiry_days == 365
        assert settings.min_commit_message_length == 5
        assert settings.activity_window_days == 365
        assert settings.storage_backend == "local"

    def test_environment_overrides(self, monkeypatch):
        """Settings are read from upper-case environment variables."""
        monkeypatch.setenv("JWT_SECRET_KEY", "a-real-secret")
        monkeypatch.setenv("DEFAULT_EXPIRY_DAYS", "14")
        monkeypatch.setenv("DATABASE_URL", "postgresql://db/medilocker")
        settings = Settings(_env_file=None)

        assert settings.default_expiry_days == 14
        assert settings.is_sqlite is False

    def test_missing_secret_in_development(self, monkeypatch):
        """Development gets a generated key with a warning."""
        monkeypatch.setenv("ENVIRONMENT", "development")
        with pytest.warns(UserWarning):
            settings = Settings(_env_file=None, jwt_secret_key="")
        assert len(settings.jwt_secret_key) > 32

    def test_missing_secret_in_production(self, monkeypatch):
        """Production refuses to start without a key."""
        monkeypatch.setenv("ENVIRONMENT", "production")
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, jwt_secret_key="change-me")

    @pytest.mark.parametrize("field", ["min_commit_message_length", "default_expiry_days"])
    def test_positive_limits(self, field):
        """Limits must be at least one."""
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, jwt_secret_key="a-real-secret", **{field: 0})

    def test_log_level_is_normalised(self):
        """Log levels are upper-cased and checked."""
        settings = Settings(_env_file=None, jwt_secret_key="a-real-secret", log_level="debug")
        assert settings.log_level == "DEBUG"
        with pytest.raises(PydanticValidationError):
            Settings(_env_file=None, jwt_secret_key="a-real-secret", log_level="loud")


class TestBlobStoreSelection:
    """Choosing the storage backend from settings."""

    def test_local(self, settings):
        """The local backend is the default."""
        assert isinstance(build_blob_store(settings), LocalBlobStore)

    def test_s3(self, tmp_path):
        """The S3 backend is selected by name."""
        settings = Settings(
            _env_file=None,
            jwt_secret_key="a-real-secret",
            storage_backend="s3",
            s3_bucket_name="bucket",
            local_storage_path=str(tmp_path),
        )
        store = build_blob_store(settings)

        assert isinstance(store, S3BlobStore)
        assert store.bucket_name == "bucket"
