"""Main CLI entry point for crewupload."""

from __future__ import annotations

import click

from crewupload import __version__
from crewupload.cli.auth import auth
from crewupload.cli.common import Context, ExitCode, global_options, make_api_client
from crewupload.cli.config_cmd import config
from crewupload.cli.upload import scan, upload
from crewupload.core.exceptions import CrewUploadError
from crewupload.core.output import OutputFormat, print_error, print_output, print_success

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="crewupload")
def cli() -> None:
    """crewupload - Resumable uploads of crew media to the production server.

    Get started:

      crewupload config init     # Create config file

      crewupload auth login      # Authenticate

      crewupload upload ./DAY_01 --project "Feature X" --crew Camera

    Use --help on any command for more information.
    """
    pass


cli.add_command(config)
cli.add_command(auth)
cli.add_command(scan)
cli.add_command(upload)


# =============================================================================
# Top-Level Commands
# =============================================================================


@cli.command()
@global_options
def ping(ctx: Context) -> None:
    """Check server connectivity and tus support."""
    try:
        profile = ctx.get_profile()
        client = make_api_client(profile)
        try:
            result = client.ping(profile.upload_path)
        finally:
            client.close()
    except CrewUploadError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.GENERAL_ERROR) from e

    if ctx.output_format == OutputFormat.JSON:
        print_output(result, format=OutputFormat.JSON)
        return

    print_success(f"Server reachable: {result['url']}")
    print_output(
        {
            "tus_version": result["tus_version"] or "-",
            "latency": f"{result['latency_ms']}ms",
        }
    )


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
