"""
Models for drive_uploader.

Selections are immutable dataclasses; a new selection replaces the old one.
"""
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional, Tuple


class UploadPhase(str, Enum):
    """State of the upload workflow."""
    IDLE = "idle"
    SELECTING = "selecting"
    CONFLICT_PENDING = "conflict_pending"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


class ConflictAction(str, Enum):
    """How the backend should treat an existing folder of the same name."""
    MERGE = "merge"
    REPLACE = "replace"
    RENAME = "rename"


@dataclass(frozen=True)
class UploadEntry:
    """One selected file and its forward-slash path inside the selection."""
    source: Path
    relative_path: str
    size_bytes: int = 0

    @property
    def name(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]

    @property
    def relative_folder(self) -> str:
        """Directory part of the relative path, empty for a flat entry."""
        if "/" not in self.relative_path:
            return ""
        return self.relative_path.rsplit("/", 1)[0]

    @property
    def top_level_folder(self) -> Optional[str]:
        if "/" not in self.relative_path:
            return None
        return self.relative_path.split("/", 1)[0]

    @classmethod
    def from_path(cls, path: Path, relative_path: Optional[str] = None) -> "UploadEntry":
        path = Path(path)
        return cls(
            source=path,
            relative_path=relative_path or path.name,
            size_bytes=path.stat().st_size,
        )


@dataclass(frozen=True)
class PendingUpload:
    """Ordered, immutable set of entries waiting to be uploaded."""
    entries: Tuple[UploadEntry, ...] = ()

    def __post_init__(self):
        # Accept any iterable but always store a tuple
        object.__setattr__(self, "entries", tuple(self.entries))

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[UploadEntry]:
        return iter(self.entries)

    @property
    def total_bytes(self) -> int:
        return sum(entry.size_bytes for entry in self.entries)

    @property
    def is_empty(self) -> bool:
        return not self.entries


@dataclass
class ConflictDecision:
    """A destination folder collision waiting for the user's choice."""
    folder_name: str
    action: Optional[ConflictAction] = None
    rename_to: Optional[str] = None
    message: Optional[str] = None

    @property
    def awaiting_name(self) -> bool:
        return self.action == ConflictAction.RENAME


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload operations."""
    api_url: str = "http://127.0.0.1:3000/api"
    token: Optional[str] = None
    timeout: float = 60.0
    concurrency: int = 3
    success_display_seconds: float = 3.0
    read_page_size: int = 100  # entries returned per directory read

    def __post_init__(self):
        if self.concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {self.concurrency}")

    @classmethod
    def from_env(cls, **overrides) -> "UploadConfig":
        """Build config from DRIVE_* environment variables; explicit overrides win."""
        values = {}
        if os.getenv("DRIVE_API_URL"):
            values["api_url"] = os.environ["DRIVE_API_URL"]
        if os.getenv("DRIVE_API_TOKEN"):
            values["token"] = os.environ["DRIVE_API_TOKEN"]
        if os.getenv("DRIVE_API_TIMEOUT"):
            values["timeout"] = float(os.environ["DRIVE_API_TIMEOUT"])
        if os.getenv("UPLOADER_CONCURRENCY"):
            values["concurrency"] = int(os.environ["UPLOADER_CONCURRENCY"])
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)
