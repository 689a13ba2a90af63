"""File collection for the three selection sources: file picker, folder picker, drop."""
import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Sequence

from ..models import PendingUpload, UploadEntry
from ..protocols import IDirectoryReader, IFileSystemEntry

logger = logging.getLogger(__name__)


async def read_all_entries(reader: IDirectoryReader) -> List[IFileSystemEntry]:
    """Read a directory until the reader returns an empty batch."""
    entries: List[IFileSystemEntry] = []
    while True:
        batch = await reader.read_entries()
        if not batch:
            return entries
        entries.extend(batch)


class FileCollector:
    """Builds a flat PendingUpload from a user selection."""

    @staticmethod
    def from_file_picker(paths: Iterable[Path]) -> PendingUpload:
        """Plain multi-file selection: every entry is flat."""
        return PendingUpload(UploadEntry.from_path(Path(p)) for p in paths)

    @staticmethod
    def from_folder_picker(folder: Path) -> PendingUpload:
        """
        Collect all files recursively.

        Relative paths start with the picked folder's own name, the way a
        folder picker reports them.

        Args:
            folder: Root folder to scan

        Returns:
            PendingUpload sorted by path
        """
        folder = Path(folder)
        files = sorted(item for item in folder.rglob("*") if item.is_file())
        return PendingUpload(
            UploadEntry.from_path(item, f"{folder.name}/{item.relative_to(folder).as_posix()}")
            for item in files
        )

    @classmethod
    async def from_drop(cls, items: Sequence[IFileSystemEntry]) -> PendingUpload:
        """Scan dropped files and directories; zero-byte drop artifacts are skipped."""
        results = await asyncio.gather(*(cls.scan(item) for item in items))
        entries = [entry for scanned in results for entry in scanned]
        skipped = [entry for entry in entries if entry.size_bytes == 0]
        if skipped:
            logger.debug(f"Ignoring {len(skipped)} empty dropped file(s)")
        return PendingUpload(entry for entry in entries if entry.size_bytes > 0)

    @classmethod
    async def scan(cls, item: IFileSystemEntry, prefix: str = "") -> List[UploadEntry]:
        """Resolve one dropped entry into entries tagged with their full relative path."""
        if item.is_file:
            source, size = await item.file()
            return [UploadEntry(source=source, relative_path=prefix + item.name, size_bytes=size)]

        if item.is_directory:
            children = await read_all_entries(item.create_reader())
            entries: List[UploadEntry] = []
            for child in children:
                entries.extend(await cls.scan(child, prefix + item.name + "/"))
            return entries

        return []
