"""Data models for crewupload."""

from crewupload.models.base import BaseModel
from crewupload.models.file_info import FileInfo
from crewupload.models.progress import BatchReport, TaskStats, UploadSummary
from crewupload.models.task import UploadStatus, UploadTask

__all__ = [
    "BaseModel",
    "FileInfo",
    "UploadStatus",
    "UploadTask",
    "TaskStats",
    "BatchReport",
    "UploadSummary",
]
