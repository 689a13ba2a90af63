"""Tests for the httpx backend client."""
import asyncio

import httpx
import pytest

from drive_uploader.models import ConflictAction, UploadEntry
from drive_uploader.services.api_client import DriveAPIClient, DriveAPIError

BASE_URL = "http://drive.test/api"


def _client(handler, token=None):
    return DriveAPIClient(BASE_URL, token=token, transport=httpx.MockTransport(handler))


@pytest.fixture
def entry(tmp_path):
    path = tmp_path / "report.pdf"
    path.write_bytes(b"x" * 4096)
    return UploadEntry(source=path, relative_path="Docs/report.pdf", size_bytes=4096)


@pytest.mark.asyncio
async def test_folder_exists_sends_name_and_parent():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"exists": True})

    async with _client(handler, token="tok") as api:
        assert await api.folder_exists("My Photos", "/dest") is True

    request = seen[0]
    assert request.method == "GET"
    assert request.url.path == "/api/folders/check-exists"
    assert request.url.params["name"] == "My Photos"
    assert request.url.params["parentPath"] == "/dest"
    assert request.headers["Authorization"] == "Bearer tok"


@pytest.mark.asyncio
async def test_folder_exists_false():
    async with _client(lambda request: httpx.Response(200, json={"exists": False})) as api:
        assert await api.folder_exists("A", "/") is False


@pytest.mark.asyncio
async def test_get_retries_server_errors():
    responses = [httpx.Response(503), httpx.Response(200, json={"folders": [], "files": []})]

    def handler(request):
        return responses.pop(0)

    async with _client(handler) as api:
        listing = await api.list_files("/dest")

    assert listing == {"folders": [], "files": []}
    assert responses == []


@pytest.mark.asyncio
async def test_get_client_error_raises():
    def handler(request):
        return httpx.Response(404, json={"message": "not found"})

    async with _client(handler) as api:
        with pytest.raises(DriveAPIError) as exc_info:
            await api.folder_exists("A", "/missing")

    assert exc_info.value.status_code == 404
    assert exc_info.value.detail == {"message": "not found"}


@pytest.mark.asyncio
async def test_upload_sends_multipart_form_and_reports_progress(entry):
    seen = []
    progress = []

    def handler(request):
        seen.append(request)
        return httpx.Response(201, json={"ok": True})

    async def on_progress(sent, total):
        progress.append((sent, total))

    async with _client(handler) as api:
        await api.upload_file(
            entry,
            "/dest/Docs",
            conflict_action=ConflictAction.REPLACE,
            custom_name="Papers",
            progress=on_progress,
        )

    request = seen[0]
    body = request.content
    assert request.url.path == "/api/files/upload"
    assert request.headers["Content-Type"].startswith("multipart/form-data")
    assert b'name="path"\r\n\r\n/dest/Docs' in body
    assert b'name="conflictAction"\r\n\r\nreplace' in body
    assert b'name="customName"\r\n\r\nPapers' in body
    assert b'name="file"; filename="report.pdf"' in body
    assert b"x" * 4096 in body

    sent = [s for s, _ in progress]
    assert sent == sorted(sent)
    assert progress[-1][0] == progress[-1][1] == len(body)


@pytest.mark.asyncio
async def test_upload_omits_optional_fields(entry):
    seen = []

    def handler(request):
        seen.append(request.content)
        return httpx.Response(200)

    async with _client(handler) as api:
        await api.upload_file(entry, "/")

    assert b'name="conflictAction"' not in seen[0]
    assert b'name="customName"' not in seen[0]


@pytest.mark.asyncio
async def test_upload_opens_file_in_worker_thread(entry, monkeypatch):
    calls = []
    to_thread = asyncio.to_thread

    async def recording_to_thread(func, *args, **kwargs):
        calls.append((func, args))
        return await to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

    async with _client(lambda request: httpx.Response(200)) as api:
        await api.upload_file(entry, "/")

    assert calls == [(open, (entry.source, "rb"))]


@pytest.mark.asyncio
async def test_upload_missing_file_raises_before_request(tmp_path):
    seen = []
    missing = UploadEntry(source=tmp_path / "gone.txt", relative_path="gone.txt", size_bytes=1)

    def handler(request):
        seen.append(request)
        return httpx.Response(200)

    async with _client(handler) as api:
        with pytest.raises(FileNotFoundError):
            await api.upload_file(missing, "/")

    assert seen == []


@pytest.mark.asyncio
async def test_upload_error_status_raises(entry):
    async with _client(lambda request: httpx.Response(413, text="too large")) as api:
        with pytest.raises(DriveAPIError) as exc_info:
            await api.upload_file(entry, "/")

    assert exc_info.value.status_code == 413
    assert exc_info.value.detail == "too large"


@pytest.mark.asyncio
async def test_upload_is_not_retried(entry):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(500)

    async with _client(handler) as api:
        with pytest.raises(DriveAPIError):
            await api.upload_file(entry, "/")

    assert len(calls) == 1


@pytest.mark.asyncio
async def test_cancelled_upload_raises_cancelled_error(entry):
    started = asyncio.Event()

    async def on_progress(sent, total):
        started.set()
        await asyncio.Event().wait()

    async with _client(lambda request: httpx.Response(200)) as api:
        task = asyncio.create_task(api.upload_file(entry, "/", progress=on_progress))
        await started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


@pytest.mark.asyncio
async def test_requires_context():
    api = DriveAPIClient(BASE_URL)
    with pytest.raises(RuntimeError):
        await api.folder_exists("A", "/")
