"""HTTP adapter for the drive backend."""
from __future__ import annotations

import asyncio
import logging
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from ..models import ConflictAction, UploadEntry
from ..protocols import TransferProgress

logger = logging.getLogger(__name__)


class DriveAPIError(RuntimeError):
    """Raised when the backend answers with an error status."""

    def __init__(self, message: str, status_code: Optional[int] = None, detail: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.detail = detail


class _ProgressStream(httpx.AsyncByteStream):
    """Wraps a request body and reports bytes handed to the transport."""

    def __init__(self, stream, total: Optional[int], progress: TransferProgress):
        self._stream = stream
        self._total = total
        self._progress = progress

    async def __aiter__(self) -> AsyncIterator[bytes]:
        sent = 0
        async for chunk in self._stream:
            yield chunk
            sent += len(chunk)
            if self._total:
                await self._progress(sent, self._total)


def _error_detail(response: httpx.Response) -> Any:
    try:
        return response.json()
    except Exception:
        return response.text


class DriveAPIClient:
    """
    HTTP client adapter for the storage backend.

    Implements IDriveAPI protocol.
    """

    max_retries = 3

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        headers = {"Authorization": f"Bearer {self._token}"} if self._token else None
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _require_client(self) -> httpx.AsyncClient:
        if not self._client:
            raise RuntimeError("DriveAPIClient not initialized. Use 'async with' context.")
        return self._client

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        client = self._require_client()
        last_exception = None

        for attempt in range(self.max_retries):
            try:
                response = await client.get(endpoint, params=params)

                if response.status_code >= 500 and attempt < self.max_retries - 1:
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue

                if response.status_code >= 400:
                    detail = _error_detail(response)
                    raise DriveAPIError(
                        f"API error {response.status_code} on GET {endpoint}: {detail}",
                        status_code=response.status_code,
                        detail=detail,
                    )

                return response
            except (httpx.RequestError, httpx.TimeoutException) as exc:
                last_exception = exc
                if attempt < self.max_retries - 1:
                    logger.debug(f"GET {endpoint} failed ({exc}), retrying")
                    await asyncio.sleep(0.5 * (attempt + 1))
                    continue
                raise

        if last_exception:
            raise last_exception
        raise DriveAPIError(f"Failed to GET {endpoint} after {self.max_retries} attempts")

    async def folder_exists(self, name: str, parent_path: str) -> bool:
        response = await self.get(
            "/folders/check-exists",
            params={"name": name, "parentPath": parent_path},
        )
        return bool(response.json().get("exists", False))

    async def list_files(self, path: str) -> Dict[str, Any]:
        response = await self.get("/files/list", params={"path": path})
        return response.json()

    async def upload_file(
        self,
        entry: UploadEntry,
        path: str,
        conflict_action: Optional[ConflictAction] = None,
        custom_name: Optional[str] = None,
        progress: Optional[TransferProgress] = None,
    ) -> httpx.Response:
        """
        Upload one file as multipart form data.

        Never retried. Cancelling the calling task aborts the request.
        """
        client = self._require_client()

        data = {"path": path}
        if conflict_action:
            data["conflictAction"] = ConflictAction(conflict_action).value
        if custom_name:
            data["customName"] = custom_name

        fh = await asyncio.to_thread(open, entry.source, "rb")
        with fh:
            request = client.build_request(
                "POST",
                "/files/upload",
                data=data,
                files={"file": (entry.name, fh)},
                # Body writes are unbounded so large files are not cut off
                timeout=httpx.Timeout(self._timeout, write=None),
            )
            if progress is not None:
                total = request.headers.get("Content-Length")
                request.stream = _ProgressStream(
                    request.stream,
                    int(total) if total else None,
                    progress,
                )

            logger.debug(f"Uploading {entry.relative_path} -> {path}")
            response = await client.send(request)

        if response.status_code >= 400:
            detail = _error_detail(response)
            raise DriveAPIError(
                f"Upload of {entry.relative_path} failed with {response.status_code}: {detail}",
                status_code=response.status_code,
                detail=detail,
            )
        return response
