"""Atomic cancellation of in-flight transfers."""
import asyncio
import logging
from typing import Optional, Set

logger = logging.getLogger(__name__)


class AbortHandle:
    """Abort signal for one in-flight transfer task."""

    def __init__(self, task: asyncio.Task):
        self.task = task
        self.aborted = False

    def abort(self) -> bool:
        """Cancel the transfer; only the first call has an effect."""
        if self.aborted:
            return False
        self.aborted = True
        return self.task.cancel()


class CancelScope:
    """Cancellation flag and outstanding abort handles of one upload run."""

    def __init__(self):
        self.cancelled = False
        self.handles: Set[AbortHandle] = set()

    def track(self, task: asyncio.Task) -> AbortHandle:
        handle = AbortHandle(task)
        self.handles.add(handle)
        task.add_done_callback(lambda _: self.handles.discard(handle))
        return handle

    @property
    def in_flight(self) -> int:
        return len(self.handles)

    def cancel(self) -> int:
        """Set the flag, abort every outstanding handle and forget them."""
        self.cancelled = True
        handles = list(self.handles)
        self.handles.clear()
        for handle in handles:
            handle.abort()
        return len(handles)


class CancellationController:
    """Owns the cancel scope of the current run."""

    def __init__(self):
        self._scope: Optional[CancelScope] = None

    def begin(self) -> CancelScope:
        self._scope = CancelScope()
        return self._scope

    def finish(self, scope: CancelScope) -> None:
        if self._scope is scope:
            self._scope = None

    @property
    def active(self) -> Optional[CancelScope]:
        return self._scope

    def cancel(self) -> None:
        """Cancel the current run; a no-op when nothing is running."""
        scope, self._scope = self._scope, None
        if scope is None:
            return
        aborted = scope.cancel()
        logger.info(f"Upload cancelled, aborted {aborted} in-flight transfer(s)")
