"""Shared fakes for drive_uploader tests."""
import asyncio
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from drive_uploader.models import PendingUpload, UploadEntry
from drive_uploader.services.api_client import DriveAPIError


class FakeDriveAPI:
    """
    In-memory backend.

    Records every transfer, keeps an ordered start/end log, and can hold a
    transfer on an asyncio.Event or make it fail.
    """

    def __init__(self, existing=(), fail_on=(), check_error: Optional[Exception] = None, steps: int = 4):
        self.existing = set(existing)
        self.fail_on = set(fail_on)
        self.check_error = check_error
        self.steps = steps
        self.gates: Dict[str, asyncio.Event] = {}
        self.exists_calls: List[Tuple[str, str]] = []
        self.uploads: List[dict] = []
        self.log: List[Tuple[str, str]] = []
        self.started: List[str] = []
        self.finished: List[str] = []
        self.cancelled: List[str] = []
        self.active = 0
        self.max_active = 0

    def hold(self, *relative_paths: str) -> None:
        for relative_path in relative_paths:
            self.gates[relative_path] = asyncio.Event()

    def release(self, *relative_paths: str) -> None:
        for relative_path in relative_paths:
            self.gates[relative_path].set()

    async def folder_exists(self, name, parent_path):
        self.exists_calls.append((name, parent_path))
        await asyncio.sleep(0)
        if self.check_error is not None:
            raise self.check_error
        return (name, parent_path) in self.existing

    async def upload_file(self, entry, path, conflict_action=None, custom_name=None, progress=None):
        key = entry.relative_path
        self.uploads.append({
            "relative_path": key,
            "path": path,
            "conflict_action": conflict_action,
            "custom_name": custom_name,
        })
        self.started.append(key)
        self.log.append(("start", key))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            gate = self.gates.get(key)
            for step in range(1, self.steps + 1):
                await asyncio.sleep(0)
                if progress:
                    await progress(step * 100 // self.steps, 100)
                if gate is not None and step == self.steps // 2:
                    await gate.wait()
            if key in self.fail_on:
                raise DriveAPIError(f"upload of {key} failed", status_code=500)
            self.finished.append(key)
        except asyncio.CancelledError:
            self.cancelled.append(key)
            raise
        finally:
            self.active -= 1
            self.log.append(("end", key))

    async def list_files(self, path):
        return {"folders": [], "files": [{"fileName": u["relative_path"]} for u in self.uploads]}


def make_pending(*items) -> PendingUpload:
    """Build a selection from relative paths or (relative_path, size) pairs."""
    entries = []
    for item in items:
        relative_path, size = item if isinstance(item, tuple) else (item, 100)
        entries.append(UploadEntry(source=Path("/tmp") / relative_path, relative_path=relative_path, size_bytes=size))
    return PendingUpload(entries)


async def wait_until(predicate, attempts: int = 1000) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
