"""Batched concurrent uploads with aggregated progress."""
import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, TypeVar

from ..models import ConflictAction, PendingUpload
from ..protocols import IDriveAPI
from .cancellation import CancelScope
from .models import TransferCancelledError, UploadTask
from .progress import UploadProgressState

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_CONCURRENCY = 3


def chunk(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into consecutive groups of at most `size`."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def join_remote(base: str, relative: str) -> str:
    if not relative:
        return base
    if base in ("", "/"):
        return "/" + relative
    return base.rstrip("/") + "/" + relative


def destination_folder(base: str, relative_folder: str, rename_to: Optional[str] = None) -> str:
    """
    Folder a file lands in: base + the entry's relative folder.

    With a rename, the leading segment of the relative folder is replaced.
    """
    if rename_to and relative_folder:
        segments = relative_folder.split("/")
        segments[0] = rename_to
        relative_folder = "/".join(segments)
    return join_remote(base, relative_folder)


class UploadScheduler:
    """
    Uploads entries in fixed-width batches.

    Batches run one after another; the files of a batch upload concurrently.
    A batch always settles completely before the next one starts.
    """

    def __init__(self, api: IDriveAPI, concurrency: int = DEFAULT_CONCURRENCY):
        self._api = api
        self._concurrency = concurrency

    def plan(
        self,
        pending: PendingUpload,
        dest_path: str,
        conflict_action: Optional[ConflictAction] = None,
        rename_to: Optional[str] = None,
    ) -> List[List[UploadTask]]:
        tasks = [
            UploadTask(
                index=idx,
                entry=entry,
                dest_folder=destination_folder(dest_path, entry.relative_folder, rename_to),
                conflict_action=conflict_action,
                custom_name=rename_to,
            )
            for idx, entry in enumerate(pending)
        ]
        return chunk(tasks, self._concurrency)

    async def run(
        self,
        pending: PendingUpload,
        dest_path: str,
        scope: CancelScope,
        state: UploadProgressState,
        on_progress: Optional[Callable[[int], Awaitable[None]]] = None,
        conflict_action: Optional[ConflictAction] = None,
        rename_to: Optional[str] = None,
    ) -> None:
        """
        Upload every entry.

        Raises the first transfer failure once its batch has settled, or
        TransferCancelledError when a transfer was aborted.
        """
        batches = self.plan(pending, dest_path, conflict_action, rename_to)
        logger.info(
            f"Starting upload: {len(pending)} files in {len(batches)} batch(es) "
            f"of up to {self._concurrency} to '{dest_path}'"
        )

        for number, batch in enumerate(batches, 1):
            if scope.cancelled:
                logger.info("Upload cancelled by user")
                raise TransferCancelledError("upload cancelled")

            logger.debug(f"Batch {number}/{len(batches)}: {[t.entry.relative_path for t in batch]}")
            running = [
                asyncio.create_task(self._transfer(task, scope, state, on_progress))
                for task in batch
            ]
            for task in running:
                scope.track(task)

            results = await asyncio.gather(*running, return_exceptions=True)

            failures = [
                r for r in results
                if isinstance(r, BaseException) and not isinstance(r, asyncio.CancelledError)
            ]
            if failures:
                raise failures[0]
            if scope.cancelled or any(isinstance(r, asyncio.CancelledError) for r in results):
                raise TransferCancelledError("upload cancelled")

        logger.info(f"Upload complete: {len(pending)} files")

    async def _transfer(
        self,
        task: UploadTask,
        scope: CancelScope,
        state: UploadProgressState,
        on_progress: Optional[Callable[[int], Awaitable[None]]],
    ) -> None:
        entry = task.entry

        async def report(sent: int, total: int) -> None:
            if scope.cancelled or total <= 0:
                return
            before = state.percent
            percent = state.update(task.index, round(entry.size_bytes * sent / total), entry.size_bytes)
            if on_progress and percent != before:
                await on_progress(percent)

        await self._api.upload_file(
            entry,
            task.dest_folder,
            conflict_action=task.conflict_action,
            custom_name=task.custom_name,
            progress=report,
        )
        logger.debug(f"Uploaded {entry.relative_path} to {task.dest_folder}")
