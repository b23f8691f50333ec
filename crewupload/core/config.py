"""Configuration management for crewupload.

Supports YAML profiles and environment variable overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from crewupload.core.exceptions import ConfigurationError, ProfileNotFoundError
from crewupload.core.timeouts import DEFAULT_HTTP_TIMEOUT_SECONDS
from crewupload.core.validation import (
    validate_chunk_size,
    validate_concurrency,
    validate_retry_delays,
    validate_server_url,
    validate_timeout,
)
from crewupload.uploaders.constants import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_CONCURRENT,
    DEFAULT_REPORT_INTERVAL,
    DEFAULT_RETRY_DELAYS,
    DEFAULT_SERVER_URL,
    DEFAULT_UPLOAD_PATH,
)

# =============================================================================
# Constants
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "crewupload"
CONFIG_FILE = CONFIG_DIR / "config.yaml"

# Environment variable names
ENV_URL = "CREWUPLOAD_URL"
ENV_TOKEN = "CREWUPLOAD_TOKEN"
ENV_PROFILE = "CREWUPLOAD_PROFILE"
ENV_VERIFY_SSL = "CREWUPLOAD_VERIFY_SSL"
ENV_TIMEOUT = "CREWUPLOAD_TIMEOUT"
ENV_CHUNK_SIZE = "CREWUPLOAD_CHUNK_SIZE"
ENV_MAX_CONCURRENT = "CREWUPLOAD_MAX_CONCURRENT"


# =============================================================================
# Profile
# =============================================================================


@dataclass
class Profile:
    """Configuration profile for an upload server."""

    url: str = DEFAULT_SERVER_URL
    upload_path: str = DEFAULT_UPLOAD_PATH
    verify_ssl: bool = True
    timeout: int = DEFAULT_HTTP_TIMEOUT_SECONDS
    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_concurrent: int = DEFAULT_MAX_CONCURRENT
    retry_delays: tuple[float, ...] = DEFAULT_RETRY_DELAYS
    report_interval: float = DEFAULT_REPORT_INTERVAL

    @property
    def endpoint(self) -> str:
        """Absolute tus creation endpoint."""
        return f"{self.url.rstrip('/')}/{self.upload_path.strip('/')}"

    def validate(self) -> "Profile":
        """Validate field values, normalizing the URL.

        Raises:
            ValidationError: If any field is out of range.
        """
        self.url = validate_server_url(self.url)
        validate_timeout(self.timeout)
        validate_chunk_size(self.chunk_size)
        validate_concurrency(self.max_concurrent)
        self.retry_delays = validate_retry_delays(self.retry_delays)
        validate_timeout(self.report_interval)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "url": self.url,
            "upload_path": self.upload_path,
            "verify_ssl": self.verify_ssl,
            "timeout": self.timeout,
            "chunk_size": self.chunk_size,
            "max_concurrent": self.max_concurrent,
            "retry_delays": list(self.retry_delays),
            "report_interval": self.report_interval,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Profile":
        """Create from dictionary."""
        return cls(
            url=data.get("url", DEFAULT_SERVER_URL),
            upload_path=data.get("upload_path", DEFAULT_UPLOAD_PATH),
            verify_ssl=data.get("verify_ssl", True),
            timeout=data.get("timeout", DEFAULT_HTTP_TIMEOUT_SECONDS),
            chunk_size=data.get("chunk_size", DEFAULT_CHUNK_SIZE),
            max_concurrent=data.get("max_concurrent", DEFAULT_MAX_CONCURRENT),
            retry_delays=tuple(data.get("retry_delays", DEFAULT_RETRY_DELAYS)),
            report_interval=data.get("report_interval", DEFAULT_REPORT_INTERVAL),
        )


# =============================================================================
# Config
# =============================================================================


@dataclass
class Config:
    """Application configuration."""

    default_profile: str = "default"
    output_format: str = "table"
    profiles: dict[str, Profile] = field(default_factory=dict)

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load config from file with environment variable overrides.

        Priority (highest to lowest):
        1. Environment variables
        2. Config file
        3. Defaults

        Args:
            config_path: Optional path to config file.

        Returns:
            Loaded configuration.

        Raises:
            ConfigurationError: If the file or an environment value is malformed.
        """
        path = config_path or CONFIG_FILE
        config = cls()

        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

                config.default_profile = data.get("default_profile", "default")
                config.output_format = data.get("output_format", "table")

                for name, pdata in (data.get("profiles") or {}).items():
                    config.profiles[name] = Profile.from_dict(pdata or {})
            except (OSError, yaml.YAMLError, AttributeError, TypeError) as e:
                raise ConfigurationError(f"Failed to load config: {e}") from e

        if url := os.getenv(ENV_URL):
            base = config.profiles.get("default") or Profile()
            base.url = url
            config.profiles["default"] = base

        if profile := os.getenv(ENV_PROFILE):
            config.default_profile = profile

        target = config.profiles.get(config.default_profile)
        if target is not None:
            _apply_env_overrides(target)

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save config to file (tokens are never written here).

        Args:
            config_path: Optional path to config file.
        """
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "default_profile": self.default_profile,
            "output_format": self.output_format,
            "profiles": {name: p.to_dict() for name, p in self.profiles.items()},
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def has_profile(self, name: str) -> bool:
        return name in self.profiles

    def get_profile(self, name: Optional[str] = None) -> Profile:
        """Get profile by name or default.

        Args:
            name: Profile name. If None, uses default_profile.

        Returns:
            Profile configuration.

        Raises:
            ProfileNotFoundError: If profile doesn't exist.
        """
        name = name or self.default_profile
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        return self.profiles[name]

    def add_profile(self, name: str, url: str, **settings: Any) -> Profile:
        """Add or update a profile.

        Args:
            name: Profile name.
            url: Upload server URL.
            **settings: Other Profile fields.

        Returns:
            Created profile.
        """
        profile = Profile(url=url, **settings).validate()
        self.profiles[name] = profile
        return profile

    def remove_profile(self, name: str) -> bool:
        """Remove a profile.

        Returns:
            True if removed, False if didn't exist.
        """
        if name in self.profiles:
            del self.profiles[name]
            return True
        return False

    def set_default_profile(self, name: str) -> None:
        """Set the default profile.

        Raises:
            ProfileNotFoundError: If profile doesn't exist.
        """
        if name not in self.profiles:
            raise ProfileNotFoundError(name)
        self.default_profile = name


def _apply_env_overrides(profile: Profile) -> None:
    """Apply per-setting environment overrides to the active profile."""
    if verify := os.getenv(ENV_VERIFY_SSL):
        profile.verify_ssl = verify.lower() in ("true", "1", "yes")

    for env_name, attr in (
        (ENV_TIMEOUT, "timeout"),
        (ENV_CHUNK_SIZE, "chunk_size"),
        (ENV_MAX_CONCURRENT, "max_concurrent"),
    ):
        raw = os.getenv(env_name)
        if not raw:
            continue
        try:
            setattr(profile, attr, int(raw))
        except ValueError as e:
            raise ConfigurationError(
                f"{env_name} must be an integer", field=attr, value=raw
            ) from e


def get_token() -> Optional[str]:
    """Get bearer token from environment variable.

    Returns:
        Token if set, None otherwise.
    """
    return os.getenv(ENV_TOKEN)
