"""Authentication management for crewupload.

Handles bearer token caching and process-wide invalidation when the upload
server reports that the token is no longer accepted.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

from crewupload.core.config import CONFIG_DIR, ENV_TOKEN

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

SESSION_CACHE_FILE = CONFIG_DIR / ".session"
SESSION_EXPIRY_HOURS = 12


# =============================================================================
# Session Cache
# =============================================================================


@dataclass
class CachedSession:
    """Cached bearer token with metadata."""

    token: str
    url: str
    created_at: datetime
    expires_at: datetime | None = None

    def is_expired(self) -> bool:
        """Check if session has expired."""
        if self.expires_at:
            return datetime.now() >= self.expires_at
        return False

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "token": self.token,
            "url": self.url,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> CachedSession:
        """Create from dictionary."""
        return cls(
            token=data["token"],
            url=data["url"],
            created_at=datetime.fromisoformat(data["created_at"]),
            expires_at=(
                datetime.fromisoformat(data["expires_at"]) if data.get("expires_at") else None
            ),
        )


# =============================================================================
# AuthManager
# =============================================================================


class AuthManager:
    """Supplies the current bearer token and invalidates it on expiry.

    One instance is shared by every upload worker. ``invalidate()`` may be
    called from any worker thread; once called, no worker receives a token
    until a new one is saved.
    """

    def __init__(self, cache_file: Path | None = None):
        """Initialize auth manager.

        Args:
            cache_file: Path to session cache file.
        """
        self.cache_file = cache_file or SESSION_CACHE_FILE
        self._lock = threading.Lock()
        self._token: str | None = None
        self._invalidated = False

    # =========================================================================
    # Token Access
    # =========================================================================

    def get_token_from_env(self) -> str | None:
        """Get bearer token from environment variable."""
        return os.getenv(ENV_TOKEN)

    def get_token(self, url: str | None = None) -> str | None:
        """Get the bearer token to send with upload requests.

        Priority:
        1. Environment variable (CREWUPLOAD_TOKEN)
        2. Token held in memory
        3. Cached session

        Args:
            url: Optional URL to match for cached session.

        Returns:
            Token, or None if none is available or it was invalidated.
        """
        with self._lock:
            if self._invalidated:
                return None
            if token := self.get_token_from_env():
                return token
            if self._token:
                return self._token

        if session := self.load_session(url):
            with self._lock:
                self._token = session.token
            return session.token
        return None

    @property
    def is_invalidated(self) -> bool:
        """True after ``invalidate()`` until a new token is saved."""
        with self._lock:
            return self._invalidated

    def invalidate(self) -> None:
        """Drop the current token for the whole process."""
        with self._lock:
            already = self._invalidated
            self._invalidated = True
            self._token = None
        if not already:
            logger.error("Bearer token rejected by server; re-authentication required")
        self.clear_session()

    # =========================================================================
    # Session Cache
    # =========================================================================

    def save_session(
        self,
        token: str,
        url: str,
        expiry_hours: int = SESSION_EXPIRY_HOURS,
    ) -> CachedSession:
        """Save token to cache and make it the active token.

        Args:
            token: Bearer token returned by login.
            url: Upload server URL.
            expiry_hours: Hours until the cached token is considered expired.

        Returns:
            Cached session object.
        """
        now = datetime.now()
        session = CachedSession(
            token=token,
            url=url,
            created_at=now,
            expires_at=now + timedelta(hours=expiry_hours),
        )

        self.cache_file.parent.mkdir(parents=True, exist_ok=True)
        with open(self.cache_file, "w") as f:
            json.dump(session.to_dict(), f)

        # Owner read/write only
        try:
            os.chmod(self.cache_file, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self.cache_file)

        with self._lock:
            self._token = token
            self._invalidated = False

        return session

    def load_session(self, url: str | None = None) -> CachedSession | None:
        """Load cached session.

        Args:
            url: Optional URL to match. If provided, only returns session for that URL.

        Returns:
            Cached session if valid, None otherwise.
        """
        if not self.cache_file.exists():
            return None

        try:
            with open(self.cache_file) as f:
                data = json.load(f)
            session = CachedSession.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError, ValueError, TypeError):
            self.clear_session()
            return None

        if url and session.url.rstrip("/") != url.rstrip("/"):
            return None

        if session.is_expired():
            self.clear_session()
            return None

        return session

    def clear_session(self) -> bool:
        """Clear cached session.

        Returns:
            True if cache was cleared.
        """
        if self.cache_file.exists():
            try:
                self.cache_file.unlink()
                return True
            except OSError:
                logger.warning("Could not remove session cache %s", self.cache_file)
        return False

    def get_session_info(self, url: str | None = None) -> dict | None:
        """Get session information for display.

        Returns:
            Dict with session info or None.
        """
        session = self.load_session(url)
        if not session:
            return None

        return {
            "url": session.url,
            "created_at": session.created_at.isoformat(),
            "expires_at": session.expires_at.isoformat() if session.expires_at else None,
            "is_expired": session.is_expired(),
        }
