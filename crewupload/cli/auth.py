"""Authentication commands for crewupload."""

from __future__ import annotations

import click

from crewupload.cli.common import Context, ExitCode, global_options, make_api_client
from crewupload.core.exceptions import AuthenticationError, CrewUploadError
from crewupload.core.output import (
    OutputFormat,
    print_error,
    print_json,
    print_key_value,
    print_success,
    print_warning,
)


@click.group()
def auth() -> None:
    """Log in to the upload server."""
    pass


@auth.command("login")
@click.option("--password", help="Crew password (will prompt if not provided)")
@global_options
def auth_login(ctx: Context, password: str | None) -> None:
    """Exchange the crew password for a token and cache it.

    Example:
        crewupload auth login
        crewupload auth login --profile staging
    """
    try:
        profile = ctx.get_profile()
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.GENERAL_ERROR) from e

    if not password:
        password = click.prompt("Password", hide_input=True)

    if not ctx.quiet:
        click.echo(f"Authenticating with {profile.url}...")

    client = make_api_client(profile)
    try:
        token = client.login(password)
        session = ctx.auth_manager.save_session(token=token, url=profile.url)
    except AuthenticationError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.AUTH_ERROR) from e
    except CrewUploadError as e:
        print_error(f"Login failed: {e}")
        raise SystemExit(ExitCode.GENERAL_ERROR) from e
    finally:
        client.close()

    if ctx.output_format == OutputFormat.JSON:
        print_json(
            {
                "status": "authenticated",
                "url": profile.url,
                "expires_at": session.expires_at.isoformat() if session.expires_at else None,
            }
        )
    else:
        print_success("Logged in")
        click.echo(f"Session cached until {session.expires_at:%Y-%m-%d %H:%M}")


@auth.command("logout")
@global_options
def auth_logout(ctx: Context) -> None:
    """Revoke the cached token and forget it.

    Example:
        crewupload auth logout
    """
    try:
        profile = ctx.get_profile()
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.GENERAL_ERROR) from e

    session = ctx.auth_manager.load_session(profile.url)
    if session:
        client = make_api_client(profile, token=session.token)
        try:
            client.logout()
        finally:
            client.close()

    if ctx.auth_manager.clear_session():
        print_success("Logged out")
    else:
        print_warning("No cached session found")


@auth.command("status")
@global_options
def auth_status(ctx: Context) -> None:
    """Show whether a token is available.

    Example:
        crewupload auth status -o json
    """
    try:
        profile = ctx.get_profile()
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.GENERAL_ERROR) from e

    session_info = ctx.auth_manager.get_session_info(profile.url)
    status = {
        "url": profile.url,
        "env_token": "(set)" if ctx.auth_manager.get_token_from_env() else "(not set)",
        "session_cached": session_info is not None,
    }
    if session_info:
        status["session_created"] = session_info["created_at"]
        status["session_expires"] = session_info["expires_at"]

    if ctx.output_format == OutputFormat.JSON:
        print_json(status)
    else:
        print_key_value(status, title=f"Auth Status: {ctx.profile_name or ctx.config.default_profile}")
