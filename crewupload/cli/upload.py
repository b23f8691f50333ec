"""Scan and upload commands for crewupload."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Optional

import click
from rich.progress import Progress, TaskID

from crewupload.cli.common import (
    Context,
    ExitCode,
    global_options,
    handle_errors,
    make_api_client,
    make_tus_factory,
)
from crewupload.core.exceptions import AuthExpiredError
from crewupload.core.logging import LogContext, get_audit_logger
from crewupload.core.output import (
    OutputFormat,
    create_progress,
    format_file_size,
    format_speed,
    format_time,
    format_time_remaining,
    print_error,
    print_info,
    print_json,
    print_output,
    print_success,
    print_warning,
)
from crewupload.core.validation import validate_chunk_size, validate_concurrency
from crewupload.models.file_info import FileInfo
from crewupload.models.progress import BatchReport, UploadSummary
from crewupload.services.events import (
    BatchMonitor,
    EventBus,
    TaskCompleted,
    TaskFailed,
    TaskPaused,
    TaskProgress,
    UploadEvent,
)
from crewupload.services.scheduler import UploadScheduler
from crewupload.uploaders.common import expand_paths
from crewupload.uploaders.retry import RetryPolicy

logger = logging.getLogger(__name__)

MIB = 1024 * 1024


def _collect(paths: tuple[str, ...]) -> list[FileInfo]:
    try:
        return expand_paths(Path(p) for p in paths)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="PATH") from e


# =============================================================================
# Progress View
# =============================================================================


class ProgressView:
    """Renders upload events as Rich progress bars.

    Runs on the event dispatcher thread; Rich progress updates are
    thread-safe.
    """

    def __init__(self, progress: Progress, files: dict[str, tuple[str, int]]) -> None:
        self.progress = progress
        self._bars: dict[str, TaskID] = {
            task_id: progress.add_task(name, total=size or 1)
            for task_id, (name, size) in files.items()
        }
        total = sum(size for _, size in files.values())
        self._overall = progress.add_task("[bold]Total", total=total or 1)

    def on_event(self, event: UploadEvent) -> None:
        bar = self._bars.get(event.task_id)
        if bar is None:
            return
        if isinstance(event, TaskProgress):
            self.progress.update(bar, completed=event.bytes_uploaded)
        elif isinstance(event, TaskCompleted):
            self.progress.update(bar, completed=event.bytes_total or 1)
        elif isinstance(event, TaskFailed):
            name = self.progress.tasks[bar].description
            self.progress.update(bar, description=f"[red]{name}[/red]")
        elif isinstance(event, TaskPaused):
            name = self.progress.tasks[bar].description
            self.progress.update(bar, description=f"[yellow]{name}[/yellow]")

    def on_report(self, report: BatchReport) -> None:
        self.progress.update(self._overall, completed=report.bytes_uploaded)


def _log_report(report: BatchReport) -> None:
    logger.info(
        "Batch: %s of %s (%.1f%%) at %s, %s left%s",
        format_file_size(report.bytes_uploaded),
        format_file_size(report.bytes_total),
        report.percent,
        format_speed(report.speed),
        format_time_remaining(report.bytes_total - report.bytes_uploaded, report.speed),
        " [final]" if report.final else "",
    )


# =============================================================================
# Commands
# =============================================================================


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@global_options
def scan(ctx: Context, paths: tuple[str, ...]) -> None:
    """List the files an upload of PATHS would queue.

    Folders are walked recursively; hidden files are skipped.

    Example:
        crewupload scan ./DAY_01 ./notes.pdf
    """
    files = _collect(paths)
    rows = [
        {
            "name": f.display_name,
            "size": format_file_size(f.size),
            "type": f.type,
        }
        for f in files
    ]

    if ctx.output_format == OutputFormat.JSON:
        print_json([f.to_dict() for f in files])
        return

    print_output(rows, columns=["name", "size", "type"], title="Files")
    if not ctx.quiet:
        click.echo(f"{len(files)} file(s), {format_file_size(sum(f.size for f in files))}")


@click.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option("--project", required=True, help="Project (production) name")
@click.option("--crew", required=True, help="Crew or department name")
@click.option("--session-id", default=None, help="Existing session ID (skips session creation)")
@click.option("--notes", default=None, help="Notes attached to a new session")
@click.option("--workers", type=int, default=None, help="Concurrent uploads (default: profile)")
@click.option("--chunk-size", type=int, default=None, help="Chunk size in MB (default: profile)")
@global_options
@handle_errors
def upload(
    ctx: Context,
    paths: tuple[str, ...],
    project: str,
    crew: str,
    session_id: Optional[str],
    notes: Optional[str],
    workers: Optional[int],
    chunk_size: Optional[int],
) -> None:
    """Upload files and folders to a crew session.

    Each file is sent with the tus resumable protocol. Ctrl+C pauses the
    running uploads and exits.

    Example:
        crewupload upload ./DAY_01 --project "Feature X" --crew Camera
    """
    profile = ctx.get_profile()
    token = ctx.require_token(profile)

    max_concurrent = validate_concurrency(workers or profile.max_concurrent)
    chunk_bytes = validate_chunk_size(chunk_size * MIB) if chunk_size else profile.chunk_size

    files = _collect(paths)
    if not files:
        print_warning("No files to upload")
        return

    show_progress = not ctx.quiet and ctx.output_format == OutputFormat.TABLE

    if not session_id:
        api = make_api_client(profile, token=token)
        try:
            session_id = api.create_session(project, crew, notes)
        except AuthExpiredError:
            ctx.auth_manager.invalidate()
            raise
        finally:
            api.close()
        if show_progress:
            print_info(f"Created session {session_id}")

    metadata = {"sessionId": session_id, "projectName": project, "crewName": crew}

    monitor = BatchMonitor(reporter=_log_report, interval=profile.report_interval)
    bus = EventBus(monitor)
    scheduler = UploadScheduler(
        make_tus_factory(profile, ctx.auth_manager),
        max_concurrent=max_concurrent,
        chunk_size=chunk_bytes,
        retry_policy=RetryPolicy(delays=profile.retry_delays),
        bus=bus,
        auth=ctx.auth_manager,
        audit=get_audit_logger(),
    )

    tasks = scheduler.add_files(files, metadata)
    if show_progress:
        click.echo(
            f"Uploading {len(tasks)} file(s), {format_file_size(sum(t.size for t in tasks))} "
            f"to session {session_id} ({max_concurrent} at a time)"
        )

    progress = create_progress() if show_progress else None
    if progress is not None:
        view = ProgressView(progress, {t.id: (t.display_name, t.size) for t in tasks})
        monitor.sink = view.on_event
        monitor.reporter = view.on_report
        progress.start()

    started = time.monotonic()
    interrupted = False
    bus.start()
    try:
        with LogContext("upload batch", logger, session=session_id, files=len(tasks)):
            scheduler.start_all()
            while not scheduler.wait(timeout=0.5):
                pass
    except KeyboardInterrupt:
        interrupted = True
        scheduler.pause_all()
        scheduler.wait()
    finally:
        bus.stop()
        if progress is not None:
            progress.stop()
        scheduler.shutdown()

    summary = scheduler.summary(time.monotonic() - started)
    _print_summary(ctx, summary, session_id, interrupted)

    if summary.auth_expired:
        raise SystemExit(ExitCode.AUTH_ERROR)
    if interrupted:
        raise SystemExit(ExitCode.USER_CANCELLED)
    if summary.failed:
        raise SystemExit(ExitCode.GENERAL_ERROR)


def _print_summary(
    ctx: Context,
    summary: UploadSummary,
    session_id: str,
    interrupted: bool,
) -> None:
    if ctx.output_format == OutputFormat.JSON:
        print_json(
            {
                "session": session_id,
                "total": summary.total,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
                "bytes_uploaded": summary.bytes_uploaded,
                "duration": round(summary.duration, 2),
                "auth_expired": summary.auth_expired,
                "interrupted": interrupted,
                "errors": summary.errors,
            }
        )
        return

    if summary.auth_expired:
        print_error("Session expired. Please log in again with 'crewupload auth login'.")
    elif interrupted:
        print_warning(f"Paused after {summary.succeeded}/{summary.total} file(s)")
    elif summary.success:
        print_success(
            f"Uploaded {summary.succeeded} file(s), {format_file_size(summary.bytes_uploaded)} "
            f"in {format_time(summary.duration)} ({format_speed(summary.throughput)})"
        )
    else:
        print_error(f"{summary.failed} of {summary.total} file(s) failed")

    for line in summary.errors:
        print_warning(line)
