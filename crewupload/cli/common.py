"""Common CLI utilities, decorators, and helpers."""

from __future__ import annotations

import sys
from functools import wraps
from typing import Any, Callable, Optional, TypeVar

import click

from crewupload.core.auth import AuthManager
from crewupload.core.client import ApiClient
from crewupload.core.config import Config, Profile
from crewupload.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    CrewUploadError,
    ProfileNotFoundError,
)
from crewupload.core.logging import setup_logging
from crewupload.core.output import OutputFormat, print_error
from crewupload.uploaders.tus import TusClient

F = TypeVar("F", bound=Callable[..., Any])


# =============================================================================
# Exit Codes
# =============================================================================


class ExitCode:
    """Standard exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    AUTH_ERROR = 2
    USER_CANCELLED = 5


# =============================================================================
# Context Object
# =============================================================================


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.config: Optional[Config] = None
        self.profile_name: Optional[str] = None
        self.output_format: OutputFormat = OutputFormat.TABLE
        self.quiet: bool = False
        self.verbose: bool = False
        self.auth_manager: AuthManager = AuthManager()

    def get_profile(self) -> Profile:
        """Resolve the active profile.

        Raises:
            ConfigurationError: If the profile does not exist.
        """
        if self.config is None:
            self.config = Config.load()
        try:
            return self.config.get_profile(self.profile_name)
        except ProfileNotFoundError as e:
            raise ConfigurationError(
                f"Profile '{self.profile_name or self.config.default_profile}' not found. "
                "Run 'crewupload config init' to create one."
            ) from e

    def require_token(self, profile: Profile) -> str:
        """Return the bearer token for ``profile``.

        Raises:
            AuthenticationError: If no token is available.
        """
        token = self.auth_manager.get_token(profile.url)
        if not token:
            raise AuthenticationError(
                profile.url, "Not logged in. Run 'crewupload auth login' first."
            )
        return token


pass_context = click.make_pass_decorator(Context, ensure=True)


# =============================================================================
# Client Construction
# =============================================================================


def make_api_client(profile: Profile, token: Optional[str] = None) -> ApiClient:
    """Build an API client for ``profile``."""
    return ApiClient(base_url=profile.url, token=token, verify_ssl=profile.verify_ssl)


def make_tus_factory(profile: Profile, auth_manager: AuthManager) -> Callable[[], TusClient]:
    """Build a factory that gives every upload worker its own tus client.

    The token is looked up per request, so an invalidated token stops all
    workers at once.
    """

    def token_provider() -> Optional[str]:
        return auth_manager.get_token(profile.url)

    def factory() -> TusClient:
        return TusClient(
            profile.endpoint,
            token_provider=token_provider,
            timeout=profile.timeout,
            verify_ssl=profile.verify_ssl,
        )

    return factory


# =============================================================================
# Global Options
# =============================================================================


def global_options(f: F) -> F:
    """Add global options to a command."""

    @click.option(
        "--profile",
        "-p",
        envvar="CREWUPLOAD_PROFILE",
        help="Config profile to use",
    )
    @click.option(
        "--output",
        "-o",
        "output_format",
        type=click.Choice(["json", "table"]),
        default="table",
        help="Output format",
    )
    @click.option("--quiet", "-q", is_flag=True, help="Minimal output")
    @click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
    @pass_context
    @wraps(f)
    def wrapper(
        ctx: Context,
        profile: Optional[str],
        output_format: str,
        quiet: bool,
        verbose: bool,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Populate context from global options and invoke the command."""
        ctx.profile_name = profile
        ctx.output_format = OutputFormat.from_string(output_format)
        ctx.quiet = quiet
        ctx.verbose = verbose

        setup_logging(quiet=quiet, verbose=verbose)
        ctx.config = Config.load()

        return f(ctx, *args, **kwargs)

    return wrapper  # type: ignore


# =============================================================================
# Error Handling
# =============================================================================


def handle_errors(f: F) -> F:
    """Print known errors and exit with the matching code."""

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return f(*args, **kwargs)
        except AuthenticationError as e:
            print_error(str(e))
            sys.exit(ExitCode.AUTH_ERROR)
        except CrewUploadError as e:
            print_error(str(e))
            sys.exit(ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore
