"""
Protocols (Interfaces) for Dependency Inversion.

Following Interface Segregation Principle - small, focused interfaces.
"""
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    List,
    Optional,
    Protocol,
    Tuple,
    runtime_checkable,
)

from .models import ConflictAction, UploadEntry

# (bytes_sent, bytes_total) of one request body
TransferProgress = Callable[[int, int], Awaitable[None]]


@runtime_checkable
class IDriveAPI(Protocol):
    """Interface for the storage backend operations used during upload."""

    async def folder_exists(self, name: str, parent_path: str) -> bool:
        """Check whether `parent_path` already holds a folder called `name`."""
        ...

    async def upload_file(
        self,
        entry: UploadEntry,
        path: str,
        conflict_action: Optional[ConflictAction] = None,
        custom_name: Optional[str] = None,
        progress: Optional[TransferProgress] = None,
    ) -> Any:
        """Upload one file into the folder `path`."""
        ...

    async def list_files(self, path: str) -> Dict[str, Any]:
        """List folders and files under `path`."""
        ...


@runtime_checkable
class IDirectoryReader(Protocol):
    """
    Paginated directory listing.

    A single call may return only part of the listing; callers keep reading
    until an empty batch comes back.
    """

    async def read_entries(self) -> List["IFileSystemEntry"]:
        ...


@runtime_checkable
class IFileSystemEntry(Protocol):
    """A dropped item: either a file or a directory."""

    name: str
    is_file: bool
    is_directory: bool

    async def file(self) -> Tuple[Path, int]:
        """Resolve a file entry to its content handle and size."""
        ...

    def create_reader(self) -> IDirectoryReader:
        """Reader over a directory entry's children."""
        ...
