"""Tests for crewupload.core.config module."""

from __future__ import annotations

from pathlib import Path

import pytest

from crewupload.core.config import Config, Profile, get_token
from crewupload.core.exceptions import ConfigurationError, ProfileNotFoundError, ValidationError
from crewupload.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS
from crewupload.uploaders.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_RETRY_DELAYS,
)

MIB = 1024 * 1024

# =============================================================================
# Profile Tests
# =============================================================================


class TestProfile:
    """Tests for Profile dataclass."""

    def test_default_values(self):
        profile = Profile()
        assert profile.url == "https://upload.turbo.net.au"
        assert profile.upload_path == "/files"
        assert profile.verify_ssl is True
        assert profile.timeout == DEFAULT_HTTP_TIMEOUT_SECONDS
        assert profile.chunk_size == DEFAULT_CHUNK_SIZE
        assert profile.max_concurrent == DEFAULT_MAX_CONCURRENT
        assert profile.retry_delays == DEFAULT_RETRY_DELAYS

    @pytest.mark.parametrize(
        "url, upload_path, expected",
        [
            ("https://upload.test", "/files", "https://upload.test/files"),
            ("https://upload.test/", "files/", "https://upload.test/files"),
            ("https://upload.test/api", "/tus/files", "https://upload.test/api/tus/files"),
        ],
    )
    def test_endpoint(self, url, upload_path, expected):
        assert Profile(url=url, upload_path=upload_path).endpoint == expected

    def test_to_dict_round_trips(self):
        profile = Profile(url="https://upload.test", chunk_size=8 * MIB, retry_delays=(2.0, 4.0))

        restored = Profile.from_dict(profile.to_dict())

        assert restored == profile
        assert profile.to_dict()["retry_delays"] == [2.0, 4.0]

    def test_from_dict_fills_defaults(self):
        profile = Profile.from_dict({"url": "https://upload.test"})
        assert profile.upload_path == "/files"
        assert profile.max_concurrent == DEFAULT_MAX_CONCURRENT

    def test_validate_normalizes_url(self):
        profile = Profile(url="https://upload.test/").validate()
        assert profile.url == "https://upload.test"

    @pytest.mark.parametrize(
        "field, value",
        [
            ("url", "ftp://upload.test"),
            ("timeout", 0),
            ("chunk_size", 1024),
            ("max_concurrent", 0),
            ("max_concurrent", 65),
            ("retry_delays", ()),
        ],
    )
    def test_validate_rejects(self, field, value):
        profile = Profile(url="https://upload.test")
        setattr(profile, field, value)

        with pytest.raises(ValidationError):
            profile.validate()


# =============================================================================
# Config Tests
# =============================================================================


class TestConfig:
    """Tests for Config loading and saving."""

    def test_load_missing_file(self, temp_dir: Path):
        config = Config.load(temp_dir / "missing.yaml")
        assert config.profiles == {}
        assert config.default_profile == "default"

    def test_load_from_file(self, temp_dir: Path, sample_config_yaml: str):
        path = temp_dir / "config.yaml"
        path.write_text(sample_config_yaml)

        config = Config.load(path)

        assert config.default_profile == "test"
        assert set(config.profiles) == {"test", "production"}
        test = config.get_profile()
        assert test.url == "https://upload.test"
        assert test.verify_ssl is False
        assert test.max_concurrent == 2
        assert test.retry_delays == (0, 0, 0)
        assert config.get_profile("production").timeout == 600

    def test_load_malformed_file(self, temp_dir: Path):
        path = temp_dir / "config.yaml"
        path.write_text("profiles: [unclosed")

        with pytest.raises(ConfigurationError):
            Config.load(path)

    def test_load_uses_module_path(
        self, temp_dir: Path, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ):
        from crewupload.core import config as config_module

        path = temp_dir / "config.yaml"
        path.write_text(sample_config_yaml)
        monkeypatch.setattr(config_module, "CONFIG_FILE", path)

        assert Config.load().default_profile == "test"

    def test_save_and_reload(self, temp_dir: Path):
        path = temp_dir / "nested" / "config.yaml"
        config = Config()
        config.add_profile("studio", "https://upload.studio.test/", max_concurrent=4)
        config.set_default_profile("studio")

        config.save(path)
        loaded = Config.load(path)

        assert loaded.default_profile == "studio"
        assert loaded.get_profile().url == "https://upload.studio.test"
        assert loaded.get_profile().max_concurrent == 4
        assert "token" not in path.read_text()

    def test_get_missing_profile(self):
        with pytest.raises(ProfileNotFoundError):
            Config().get_profile("nope")

    def test_add_profile_validates(self):
        with pytest.raises(ValidationError):
            Config().add_profile("bad", "not a url")

    def test_remove_profile(self):
        config = Config()
        config.add_profile("a", "https://upload.test")

        assert config.has_profile("a")
        assert config.remove_profile("a") is True
        assert config.remove_profile("a") is False
        assert not config.has_profile("a")

    def test_set_default_requires_existing_profile(self):
        with pytest.raises(ProfileNotFoundError):
            Config().set_default_profile("nope")


# =============================================================================
# Environment Overrides
# =============================================================================


class TestEnvOverrides:
    """Tests for CREWUPLOAD_* environment variables."""

    def test_url_creates_default_profile(self, temp_dir: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("CREWUPLOAD_URL", "https://env.test")

        config = Config.load(temp_dir / "missing.yaml")

        assert config.get_profile().url == "https://env.test"

    def test_profile_selection(
        self, temp_dir: Path, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ):
        path = temp_dir / "config.yaml"
        path.write_text(sample_config_yaml)
        monkeypatch.setenv("CREWUPLOAD_PROFILE", "production")

        assert Config.load(path).get_profile().url == "https://upload.example.com"

    def test_settings_apply_to_active_profile(
        self, temp_dir: Path, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ):
        path = temp_dir / "config.yaml"
        path.write_text(sample_config_yaml)
        monkeypatch.setenv("CREWUPLOAD_VERIFY_SSL", "yes")
        monkeypatch.setenv("CREWUPLOAD_TIMEOUT", "90")
        monkeypatch.setenv("CREWUPLOAD_MAX_CONCURRENT", "6")

        config = Config.load(path)

        active = config.get_profile()
        assert active.verify_ssl is True
        assert active.timeout == 90
        assert active.max_concurrent == 6
        assert config.get_profile("production").timeout == 600

    def test_non_integer_override(
        self, temp_dir: Path, sample_config_yaml: str, monkeypatch: pytest.MonkeyPatch
    ):
        path = temp_dir / "config.yaml"
        path.write_text(sample_config_yaml)
        monkeypatch.setenv("CREWUPLOAD_CHUNK_SIZE", "big")

        with pytest.raises(ConfigurationError):
            Config.load(path)

    def test_get_token(self, monkeypatch: pytest.MonkeyPatch):
        assert get_token() is None
        monkeypatch.setenv("CREWUPLOAD_TOKEN", "tok")
        assert get_token() == "tok"
