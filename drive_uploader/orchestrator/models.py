"""Orchestrator data models."""
from dataclasses import dataclass
from typing import Optional

from ..models import ConflictAction, UploadEntry


@dataclass(frozen=True)
class UploadTask:
    """One file transfer scheduled inside a batch."""
    index: int
    entry: UploadEntry
    dest_folder: str
    conflict_action: Optional[ConflictAction] = None
    custom_name: Optional[str] = None


class TransferCancelledError(Exception):
    """A transfer was aborted rather than failed."""
