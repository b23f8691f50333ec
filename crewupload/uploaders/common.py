"""Common utilities for uploader modules."""

from __future__ import annotations

import base64
import logging
from collections.abc import Iterable, Mapping
from pathlib import Path

from crewupload.models.file_info import FileInfo

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Content types for media commonly produced on set
CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".avi": "video/x-msvideo",
    ".mkv": "video/x-matroska",
    ".mxf": "application/mxf",
    ".r3d": "video/x-r3d",
    ".braw": "video/x-braw",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".pdf": "application/pdf",
}

# Phrases in a response body that mean the bearer token was rejected
AUTH_EXPIRED_PHRASES = (
    "token expired",
    "expired token",
    "token invalid",
    "invalid token",
    "jwt expired",
    "unauthorized",
)


def guess_content_type(path: Path | str) -> str:
    """Return the content-type hint for a file, by extension."""
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def is_hidden(path: Path) -> bool:
    """Dotfiles, including macOS AppleDouble ``._`` files."""
    return path.name.startswith(".")


def collect_files(root: Path) -> list[Path]:
    """Recursively collect uploadable files under a root directory.

    Args:
        root: Root directory to search.

    Returns:
        Sorted list of file paths.

    Raises:
        ValueError: If root is not a directory.
    """
    if not root.exists() or not root.is_dir():
        raise ValueError(f"Not a directory: {root}")

    files: list[Path] = []
    for path in root.rglob("*"):
        relative = path.relative_to(root)
        if any(part.startswith(".") for part in relative.parts):
            continue
        if not path.is_file():
            continue

        # Skip broken symlinks
        if path.is_symlink():
            try:
                if not path.resolve().exists():
                    continue
            except (OSError, ValueError):
                continue

        files.append(path)

    return sorted(files)


def file_info_for(path: Path, root: Path | None = None) -> FileInfo:
    """Describe a file the way the picker does.

    Args:
        path: File to describe.
        root: Folder the file was found under; sets ``relative_path``.

    Raises:
        OSError: If the file cannot be stat'ed.
    """
    relative = str(path.relative_to(root).as_posix()) if root is not None else None
    return FileInfo(
        path=str(path),
        name=path.name,
        relative_path=relative,
        size=path.stat().st_size,
        type=guess_content_type(path),
    )


def expand_paths(paths: Iterable[Path]) -> list[FileInfo]:
    """Expand files and folders into picker entries.

    Folders are walked recursively and their files carry a relative path.
    Hidden files named directly are skipped as well.
    """
    entries: list[FileInfo] = []
    for path in paths:
        path = path.expanduser()
        if path.is_dir():
            entries.extend(file_info_for(f, path) for f in collect_files(path))
        elif not is_hidden(path):
            entries.append(file_info_for(path))
    return entries


def encode_metadata(metadata: Mapping[str, str]) -> str:
    """Encode tus ``Upload-Metadata``: ``key base64(value)`` pairs, comma-joined.

    Empty values are sent as a bare key.
    """
    pairs = []
    for key, value in metadata.items():
        if not value:
            pairs.append(key)
            continue
        encoded = base64.b64encode(str(value).encode("utf-8")).decode("ascii")
        pairs.append(f"{key} {encoded}")
    return ",".join(pairs)


def is_auth_expired_response(status_code: int, body: str) -> bool:
    """Check if a response means the bearer token is no longer accepted."""
    if status_code in (401, 403):
        return True
    text = body.lower()
    return any(phrase in text for phrase in AUTH_EXPIRED_PHRASES)
