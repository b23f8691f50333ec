"""Config commands for crewupload."""

from __future__ import annotations

from typing import Optional

import click

from crewupload.core import config as config_module
from crewupload.core.config import Config
from crewupload.core.exceptions import CrewUploadError
from crewupload.core.output import (
    OutputFormat,
    format_file_size,
    print_error,
    print_key_value,
    print_output,
    print_success,
)
from crewupload.uploaders.constants import DEFAULT_SERVER_URL, DEFAULT_UPLOAD_PATH

MIB = 1024 * 1024


@click.group()
def config() -> None:
    """Manage crewupload configuration."""
    pass


@config.command("init")
@click.option("--url", default=DEFAULT_SERVER_URL, show_default=True, help="Upload server URL")
@click.option("--profile", default="default", help="Profile name")
@click.option("--upload-path", default=DEFAULT_UPLOAD_PATH, show_default=True, help="tus endpoint path")
@click.option("--workers", type=int, default=None, help="Concurrent uploads")
@click.option("--chunk-size", type=int, default=None, help="Chunk size in MB")
@click.option("--no-verify-ssl", is_flag=True, help="Disable SSL verification")
@click.option("--force", is_flag=True, help="Overwrite an existing profile")
def config_init(
    url: str,
    profile: str,
    upload_path: str,
    workers: Optional[int],
    chunk_size: Optional[int],
    no_verify_ssl: bool,
    force: bool,
) -> None:
    """Create or extend the configuration file with a profile.

    Example:
        crewupload config init --url https://upload.example.com
    """
    config_file = config_module.CONFIG_FILE
    cfg = Config.load() if config_file.exists() else Config()

    if cfg.has_profile(profile) and not force:
        print_error(f"Profile '{profile}' already exists. Use --force to overwrite.")
        raise SystemExit(1)

    settings: dict = {"upload_path": upload_path, "verify_ssl": not no_verify_ssl}
    if workers is not None:
        settings["max_concurrent"] = workers
    if chunk_size is not None:
        settings["chunk_size"] = chunk_size * MIB

    try:
        created = cfg.add_profile(profile, url, **settings)
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if len(cfg.profiles) == 1:
        cfg.default_profile = profile
    cfg.save()

    print_success(f"Configuration saved to {config_file}")
    print_key_value(
        {
            "profile": profile,
            "url": created.url,
            "endpoint": created.endpoint,
            "workers": created.max_concurrent,
            "chunk_size": format_file_size(created.chunk_size),
        }
    )


@config.command("show")
@click.option("--output", "-o", type=click.Choice(["json", "table"]), default="table")
def config_show(output: str) -> None:
    """Show current configuration."""
    try:
        cfg = Config.load()
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(1) from e

    if not cfg.profiles:
        print_error("No configuration found. Run 'crewupload config init' first.")
        raise SystemExit(1)

    data = {
        "config_file": str(config_module.CONFIG_FILE),
        "default_profile": cfg.default_profile,
        "profiles": list(cfg.profiles),
    }

    if output == "json":
        data["profile_details"] = {name: p.to_dict() for name, p in cfg.profiles.items()}
        print_output(data, format=OutputFormat.JSON)
        return

    print_key_value(data, title="Configuration")
    for name, profile in cfg.profiles.items():
        marker = " (default)" if name == cfg.default_profile else ""
        click.echo()
        click.echo(f"Profile: {name}{marker}")
        print_key_value(
            {
                "endpoint": profile.endpoint,
                "verify_ssl": profile.verify_ssl,
                "timeout": f"{profile.timeout}s",
                "workers": profile.max_concurrent,
                "chunk_size": format_file_size(profile.chunk_size),
                "retry_delays": ", ".join(f"{d:g}s" for d in profile.retry_delays),
            }
        )


@config.command("use")
@click.argument("profile")
def config_use(profile: str) -> None:
    """Switch the default profile.

    Example:
        crewupload config use staging
    """
    cfg = Config.load()
    if not cfg.has_profile(profile):
        print_error(f"Profile '{profile}' not found.")
        click.echo(f"Available profiles: {', '.join(cfg.profiles) or '(none)'}")
        raise SystemExit(1)

    cfg.set_default_profile(profile)
    cfg.save()
    print_success(f"Switched to profile '{profile}'")
