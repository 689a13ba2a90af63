"""Tests for batched uploads and progress aggregation."""
import pytest

from conftest import FakeDriveAPI, make_pending
from drive_uploader.models import ConflictAction
from drive_uploader.orchestrator.cancellation import CancelScope
from drive_uploader.orchestrator.models import TransferCancelledError
from drive_uploader.orchestrator.parallel import (
    UploadScheduler,
    chunk,
    destination_folder,
    join_remote,
)
from drive_uploader.orchestrator.progress import UploadProgressState
from drive_uploader.services.api_client import DriveAPIError


def test_chunk():
    assert chunk([1, 2, 3, 4, 5, 6, 7], 3) == [[1, 2, 3], [4, 5, 6], [7]]
    assert chunk([], 3) == []


def test_join_remote():
    assert join_remote("/", "A") == "/A"
    assert join_remote("/dest", "A/sub") == "/dest/A/sub"
    assert join_remote("/dest/", "A") == "/dest/A"
    assert join_remote("/dest", "") == "/dest"


class TestDestinationFolder:
    def test_without_rename(self):
        assert destination_folder("/dest", "A/sub") == "/dest/A/sub"

    def test_rename_replaces_leading_segment(self):
        assert destination_folder("/dest", "A", "B") == "/dest/B"
        assert destination_folder("/dest", "A/sub", "B") == "/dest/B/sub"

    def test_rename_keeps_deeper_segments_with_same_name(self):
        assert destination_folder("/A", "A/A", "B") == "/A/B/A"

    def test_flat_entry_stays_in_base(self):
        assert destination_folder("/dest", "", "B") == "/dest"


class TestUploadProgressState:
    def test_percent_is_rounded_share_of_bytes(self):
        state = UploadProgressState(total_bytes=300)
        assert state.update(0, 100, 100) == 33
        assert state.update(1, 50, 200) == 50
        assert state.update(1, 200, 200) == 100

    def test_halves_round_up(self):
        state = UploadProgressState(total_bytes=200)
        assert state.update(0, 1, 100) == 1
        assert state.update(0, 5, 100) == 3
        assert state.update(0, 9, 100) == 5

    def test_never_goes_backwards(self):
        state = UploadProgressState(total_bytes=100)
        state.update("a", 60, 100)
        assert state.update("a", 20, 100) == 60

    def test_empty_total(self):
        assert UploadProgressState(total_bytes=0).percent == 0


@pytest.mark.asyncio
async def test_batches_bound_concurrency_and_run_in_order():
    api = FakeDriveAPI()
    scheduler = UploadScheduler(api, concurrency=3)
    pending = make_pending(*[f"A/f{i}.txt" for i in range(7)])

    await scheduler.run(pending, "/", CancelScope(), UploadProgressState(pending.total_bytes))

    assert api.max_active <= 3
    batches = chunk([e.relative_path for e in pending], 3)
    for earlier, later in zip(batches, batches[1:]):
        last_end = max(api.log.index(("end", key)) for key in earlier)
        first_start = min(api.log.index(("start", key)) for key in later)
        assert last_end < first_start


@pytest.mark.asyncio
async def test_progress_is_monotonic_and_reaches_100():
    api = FakeDriveAPI(steps=5)
    scheduler = UploadScheduler(api, concurrency=3)
    pending = make_pending(("A/a", 100), ("A/b", 300), ("A/c", 50), ("A/d", 1000))
    seen = []

    async def on_progress(percent):
        seen.append(percent)

    await scheduler.run(
        pending, "/", CancelScope(), UploadProgressState(pending.total_bytes), on_progress
    )

    assert seen == sorted(seen)
    assert seen[-1] == 100
    assert len(seen) == len(set(seen))


@pytest.mark.asyncio
async def test_form_fields_follow_decision():
    api = FakeDriveAPI()
    scheduler = UploadScheduler(api)
    pending = make_pending("A/x.txt", "A/sub/y.txt")

    await scheduler.run(
        pending, "/dest", CancelScope(), UploadProgressState(pending.total_bytes),
        conflict_action=ConflictAction.RENAME, rename_to="B",
    )

    assert [u["path"] for u in api.uploads] == ["/dest/B", "/dest/B/sub"]
    assert all(u["conflict_action"] == ConflictAction.RENAME for u in api.uploads)
    assert all(u["custom_name"] == "B" for u in api.uploads)


@pytest.mark.asyncio
async def test_failure_stops_after_its_batch_settles():
    api = FakeDriveAPI(fail_on={"A/f1"})
    scheduler = UploadScheduler(api, concurrency=3)
    pending = make_pending(*[f"A/f{i}" for i in range(6)])

    with pytest.raises(DriveAPIError):
        await scheduler.run(pending, "/", CancelScope(), UploadProgressState(pending.total_bytes))

    assert api.started == ["A/f0", "A/f1", "A/f2"]
    assert sorted(api.finished) == ["A/f0", "A/f2"]


@pytest.mark.asyncio
async def test_cancelled_scope_launches_nothing():
    api = FakeDriveAPI()
    scheduler = UploadScheduler(api)
    scope = CancelScope()
    scope.cancel()
    pending = make_pending("A/x")

    with pytest.raises(TransferCancelledError):
        await scheduler.run(pending, "/", scope, UploadProgressState(pending.total_bytes))

    assert api.started == []
