"""Local filesystem implementation of dropped file/directory entries."""
import asyncio
import os
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

DEFAULT_PAGE_SIZE = 100


class LocalDirectoryReader:
    """
    Reads a directory in pages, like a platform directory reader.

    Each call returns at most `page_size` entries; once the listing is
    exhausted every further call returns an empty list.
    """

    def __init__(self, directory: Path, page_size: int = DEFAULT_PAGE_SIZE):
        self._directory = Path(directory)
        self._page_size = max(1, page_size)
        self._listing: Optional[List[Path]] = None
        self._offset = 0

    async def read_entries(self) -> List[Union["LocalFileEntry", "LocalDirectoryEntry"]]:
        if self._listing is None:
            self._listing = await asyncio.to_thread(
                lambda: sorted(Path(e.path) for e in os.scandir(self._directory))
            )
        page = self._listing[self._offset:self._offset + self._page_size]
        self._offset += len(page)
        return [local_entry(path, self._page_size) for path in page]


class LocalFileEntry:
    is_file = True
    is_directory = False

    def __init__(self, path: Path):
        self.path = Path(path)
        self.name = self.path.name

    async def file(self) -> Tuple[Path, int]:
        stat = await asyncio.to_thread(self.path.stat)
        return self.path, stat.st_size

    def create_reader(self):
        raise NotADirectoryError(str(self.path))


class LocalDirectoryEntry:
    is_file = False
    is_directory = True

    def __init__(self, path: Path, page_size: int = DEFAULT_PAGE_SIZE):
        self.path = Path(path)
        self.name = self.path.name
        self._page_size = page_size

    async def file(self) -> Tuple[Path, int]:
        raise IsADirectoryError(str(self.path))

    def create_reader(self) -> LocalDirectoryReader:
        return LocalDirectoryReader(self.path, self._page_size)


def local_entry(path: Path, page_size: int = DEFAULT_PAGE_SIZE):
    path = Path(path)
    if path.is_dir():
        return LocalDirectoryEntry(path, page_size)
    return LocalFileEntry(path)


def local_entries(paths: Sequence[Path], page_size: int = DEFAULT_PAGE_SIZE):
    """Wrap local paths as dropped entries, in the given order."""
    return [local_entry(path, page_size) for path in paths]
