"""Services for drive_uploader."""
from .api_client import DriveAPIClient, DriveAPIError
from .local_entries import LocalDirectoryEntry, LocalDirectoryReader, LocalFileEntry, local_entries

__all__ = [
    "DriveAPIClient",
    "DriveAPIError",
    "LocalDirectoryEntry",
    "LocalDirectoryReader",
    "LocalFileEntry",
    "local_entries",
]
