"""Core orchestrator - coordinates selection, conflict resolution and upload."""
import asyncio
import inspect
import logging
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Sequence, Union

from ..models import (
    ConflictAction,
    ConflictDecision,
    PendingUpload,
    UploadConfig,
    UploadPhase,
)
from ..protocols import IDriveAPI, IFileSystemEntry
from ..utils.events import EventEmitter
from .cancellation import CancellationController
from .conflict import ConflictDetector
from .file_collector import FileCollector
from .models import TransferCancelledError
from .parallel import UploadScheduler
from .progress import UploadProgressState

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Union[None, Awaitable[None]]]

RENAME_BLANK = "Please enter a folder name"
RENAME_TAKEN = "This name also exists. Please choose another."


class UploadOrchestrator:
    """
    Upload workflow for one destination folder.

    Phases::

        idle -> selecting -> conflict_pending -> uploading
        idle -> selecting -> uploading
        uploading -> success -> idle (after the display timer)
        uploading -> idle (cancel)
        uploading -> error -> idle (dismiss)

    Failures never escape: they become phase transitions and events.

    Usage:
        async with DriveAPIClient(config.api_url, config.token) as api:
            orchestrator = UploadOrchestrator(api, "/Documents", config, on_uploaded=refresh)
            orchestrator.on_progress(lambda percent: print(f"{percent}%"))

            phase = await orchestrator.select_folder(Path("Photos"))
            if phase == UploadPhase.CONFLICT_PENDING:
                phase = await orchestrator.resolve_conflict(ConflictAction.MERGE)
    """

    def __init__(
        self,
        api: IDriveAPI,
        dest_path: str = "/",
        config: Optional[UploadConfig] = None,
        on_uploaded: Optional[RefreshCallback] = None,
    ):
        self._api = api
        self._dest_path = dest_path or "/"
        self._config = config or UploadConfig()
        self._on_uploaded = on_uploaded

        self._events = EventEmitter()
        self._detector = ConflictDetector(api)
        self._scheduler = UploadScheduler(api, self._config.concurrency)
        self._cancellation = CancellationController()

        self._phase = UploadPhase.IDLE
        self._pending: Optional[PendingUpload] = None
        self._conflict: Optional[ConflictDecision] = None
        self._percent = 0
        self._error: Optional[BaseException] = None
        self._success_timer: Optional[asyncio.TimerHandle] = None

    # Event subscription methods
    def on_phase_change(self, callback: Callable[[UploadPhase], None]):
        """Receives the new UploadPhase."""
        self._events.on("phase", callback)

    def on_progress(self, callback: Callable[[int], None]):
        """Receives the overall percent (0-100)."""
        self._events.on("progress", callback)

    def on_conflict(self, callback: Callable[[ConflictDecision], None]):
        """Receives the ConflictDecision awaiting a choice."""
        self._events.on("conflict", callback)

    def on_rename_rejected(self, callback: Callable[[str, str], None]):
        """Receives (rejected_name, reason)."""
        self._events.on("rename_rejected", callback)

    def on_complete(self, callback: Callable[[PendingUpload], None]):
        """Receives the PendingUpload that finished uploading."""
        self._events.on("complete", callback)

    def on_error(self, callback: Callable[[BaseException], None]):
        self._events.on("error", callback)

    # State properties
    @property
    def phase(self) -> UploadPhase:
        return self._phase

    @property
    def percent(self) -> int:
        return self._percent

    @property
    def pending(self) -> Optional[PendingUpload]:
        return self._pending

    @property
    def conflict(self) -> Optional[ConflictDecision]:
        return self._conflict

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    @property
    def dest_path(self) -> str:
        return self._dest_path

    @property
    def in_flight(self) -> int:
        scope = self._cancellation.active
        return scope.in_flight if scope else 0

    # Selection
    async def select_files(self, paths: Iterable[Path]) -> UploadPhase:
        return await self.select(FileCollector.from_file_picker(paths))

    async def select_folder(self, folder: Path) -> UploadPhase:
        return await self.select(FileCollector.from_folder_picker(folder))

    async def drop(self, items: Sequence[IFileSystemEntry]) -> UploadPhase:
        return await self.select(await FileCollector.from_drop(items))

    async def select(self, pending: PendingUpload) -> UploadPhase:
        """Take a new selection: check for a conflict, then upload or wait."""
        self._require(
            UploadPhase.IDLE, UploadPhase.SUCCESS, UploadPhase.ERROR, UploadPhase.CONFLICT_PENDING,
            operation="select",
        )
        if pending.is_empty:
            logger.debug("Empty selection ignored")
            return self._phase

        self._cancel_success_timer()
        self._pending = pending
        self._conflict = None
        self._error = None
        await self._set_phase(UploadPhase.SELECTING)

        try:
            conflict = await self._detector.detect(pending, self._dest_path)
        except asyncio.CancelledError:
            if self._pending is pending:
                await self.cancel()
            raise
        if self._pending is not pending:
            # Cancelled or replaced while the check was running
            return self._phase

        if conflict is not None:
            self._conflict = conflict
            await self._set_phase(UploadPhase.CONFLICT_PENDING)
            await self._events.emit("conflict", conflict)
            return self._phase

        return await self._run(pending)

    # Conflict resolution
    async def resolve_conflict(self, action: ConflictAction) -> UploadPhase:
        """Merge or replace start the upload; rename waits for a name."""
        self._require(UploadPhase.CONFLICT_PENDING, operation="resolve_conflict")
        action = ConflictAction(action)

        if action == ConflictAction.RENAME:
            self._conflict.action = ConflictAction.RENAME
            return self._phase

        return await self._run(self._pending, conflict_action=action)

    async def rename(self, new_name: str) -> UploadPhase:
        """Upload under a new top-level folder name unless it also exists."""
        self._require(UploadPhase.CONFLICT_PENDING, operation="rename")
        decision = self._conflict
        decision.action = ConflictAction.RENAME
        name = (new_name or "").strip()

        if not name:
            return await self._reject_rename(new_name, RENAME_BLANK)

        pending = self._pending
        exists = await self._detector.folder_exists(name, self._dest_path)
        if self._pending is not pending or self._phase != UploadPhase.CONFLICT_PENDING:
            return self._phase
        if exists:
            return await self._reject_rename(name, RENAME_TAKEN)

        decision.rename_to = name
        decision.message = None
        return await self._run(pending, conflict_action=ConflictAction.RENAME, rename_to=name)

    async def _reject_rename(self, name: str, reason: str) -> UploadPhase:
        logger.info(f"Rename to '{name}' rejected: {reason}")
        if self._conflict is not None:
            self._conflict.message = reason
        await self._events.emit("rename_rejected", name, reason)
        return self._phase

    # Control
    async def cancel(self) -> UploadPhase:
        """Abort everything in flight and return to idle. Safe to call at any time."""
        self._cancellation.cancel()
        self._pending = None
        self._conflict = None
        self._percent = 0
        self._cancel_success_timer()
        if self._phase != UploadPhase.IDLE:
            await self._set_phase(UploadPhase.IDLE)
        return self._phase

    async def dismiss(self) -> UploadPhase:
        """Acknowledge a failed run."""
        self._require(UploadPhase.ERROR, operation="dismiss")
        self._pending = None
        self._error = None
        self._percent = 0
        await self._set_phase(UploadPhase.IDLE)
        return self._phase

    # Internal methods
    async def _run(
        self,
        pending: PendingUpload,
        conflict_action: Optional[ConflictAction] = None,
        rename_to: Optional[str] = None,
    ) -> UploadPhase:
        scope = self._cancellation.begin()
        state = UploadProgressState(pending.total_bytes)
        self._conflict = None
        self._percent = 0
        await self._set_phase(UploadPhase.UPLOADING)

        async def forward_progress(percent: int) -> None:
            if scope.cancelled:
                return
            self._percent = percent
            await self._events.emit("progress", percent)

        try:
            await self._scheduler.run(
                pending,
                self._dest_path,
                scope,
                state,
                on_progress=forward_progress,
                conflict_action=conflict_action,
                rename_to=rename_to,
            )
        except TransferCancelledError:
            if not scope.cancelled:
                await self.cancel()
            return self._phase
        except asyncio.CancelledError:
            # The calling task was cancelled: abort the transfers and go idle
            if not scope.cancelled:
                logger.info(f"Upload to '{self._dest_path}' interrupted by caller")
                await self.cancel()
            raise
        except Exception as e:
            if scope.cancelled:
                return self._phase
            logger.error(f"Upload to '{self._dest_path}' failed: {e}", exc_info=True)
            self._error = e
            await self._set_phase(UploadPhase.ERROR)
            await self._events.emit("error", e)
            return self._phase
        finally:
            self._cancellation.finish(scope)

        if scope.cancelled:
            return self._phase

        self._percent = 100
        self._pending = None
        await self._set_phase(UploadPhase.SUCCESS)
        self._schedule_success_reset()
        await self._events.emit("complete", pending)
        await self._refresh_listing()
        return self._phase

    async def _refresh_listing(self) -> None:
        if self._on_uploaded is None:
            return
        try:
            result = self._on_uploaded()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Refreshing listing after upload failed: {e}")

    async def _set_phase(self, phase: UploadPhase) -> None:
        if phase == self._phase:
            return
        logger.debug(f"Phase {self._phase.value} -> {phase.value}")
        self._phase = phase
        await self._events.emit("phase", phase)

    def _schedule_success_reset(self) -> None:
        self._cancel_success_timer()
        loop = asyncio.get_running_loop()
        self._success_timer = loop.call_later(
            self._config.success_display_seconds, self._reset_after_success
        )

    def _reset_after_success(self) -> None:
        self._success_timer = None
        if self._phase != UploadPhase.SUCCESS:
            return
        self._phase = UploadPhase.IDLE
        self._percent = 0
        self._events.emit_soon("phase", UploadPhase.IDLE)

    def _cancel_success_timer(self) -> None:
        if self._success_timer is not None:
            self._success_timer.cancel()
            self._success_timer = None

    def _require(self, *phases: UploadPhase, operation: str) -> None:
        if self._phase not in phases:
            raise RuntimeError(f"Cannot {operation} in phase: {self._phase.value}")
