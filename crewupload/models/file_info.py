"""File entries as returned by the file/folder picker."""

from __future__ import annotations

from pydantic import Field

from crewupload.models.base import BaseModel


class FileInfo(BaseModel):
    """A local file selected for upload."""

    path: str = Field(..., description="Absolute path on disk")
    name: str = Field(..., description="File name")
    relative_path: str | None = Field(
        None, alias="relativePath", description="Path relative to the picked folder"
    )
    size: int = Field(..., ge=0, description="Size in bytes")
    type: str = Field("application/octet-stream", description="Content-type hint")

    @property
    def display_name(self) -> str:
        """Relative path when picked from a folder, otherwise the file name."""
        return self.relative_path or self.name
