# -----------------------------------------------------------------------------
# HTTP client for the remote document and preferences service.
#
# The implementation uses only the Python standard library (`urllib.request`)
# so it does not add a transport dependency. Every call funnels through the
# synchronous `_request()` method, which is the seam unit tests patch so no
# real HTTP happens in CI. The public coroutine methods move that blocking
# call onto a worker thread with `asyncio.to_thread`, so polling and flushing
# never block the event loop that also drives the UI bridge.
#
# Error mapping
# -------------
#   urllib.error.HTTPError  -> RemoteServiceError(status, message)
#   urllib.error.URLError   -> NetworkUnavailableError
#   socket timeouts/OSError -> NetworkUnavailableError
#   missing bearer token    -> AuthTokenMissingError
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import json
import mimetypes
import urllib.error
import urllib.parse
import urllib.request
import uuid
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import TypeAdapter

from shelfsync.core.contracts.document import (
    OptimizedDocumentJob,
    RemoteDocument,
    RemoteDocumentDetail,
    RemoteReadingPosition,
)
from shelfsync.core.errors import (
    AuthTokenMissingError,
    NetworkUnavailableError,
    RemoteServiceError,
)
from shelfsync.core.settings import Settings

from .interfaces import TokenProvider
from .network import StaticTokenProvider

_DOCUMENTS = TypeAdapter(list[RemoteDocument])
_POSITIONS = TypeAdapter(dict[str, RemoteReadingPosition])

DEFAULT_MIME_TYPE = "application/pdf"


@dataclass(slots=True)
class RemoteClient:
    """Async facade over the remote REST API.

    Implements both `DocumentService` and `ReadingPositionService`.

    Parameters
    ----------
    base_url:
        Root of the API, e.g. ``"https://reader.example.com/api"``.
    token_provider:
        Supplies the bearer token for each request. Token refresh is the
        provider's concern, not the client's.
    user_id:
        Owner id used by the listing endpoint.
    timeout_seconds:
        Per-request socket timeout.
    """

    base_url: str
    token_provider: TokenProvider
    user_id: str | None = None
    timeout_seconds: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> RemoteClient:
        return cls(
            base_url=settings.api_base_url,
            token_provider=StaticTokenProvider(settings.api_token),
            user_id=settings.user_id,
            timeout_seconds=settings.http_timeout,
        )

    # --------------------------------------------------------------------- #
    # Documents
    # --------------------------------------------------------------------- #
    async def get_optimized_document(self, document_id: str) -> OptimizedDocumentJob:
        data = await self._call("GET", f"documents/{_seg(document_id)}/optimized")
        return OptimizedDocumentJob.model_validate(data)

    async def get_optimized_meta(self, document_id: str) -> OptimizedDocumentJob:
        data = await self._call(
            "GET",
            f"documents/{_seg(document_id)}/optimized",
            query={"include_pages": "0"},
        )
        return OptimizedDocumentJob.model_validate(data)

    async def get_document(self, document_id: str) -> RemoteDocumentDetail:
        data = await self._call("GET", f"documents/{_seg(document_id)}")
        return RemoteDocumentDetail.model_validate(data)

    async def list_documents(self) -> list[RemoteDocument]:
        if not self.user_id:
            raise RemoteServiceError(400, "user id is not configured")
        data = await self._call("GET", f"documents/user/{_seg(self.user_id)}")
        documents: list[RemoteDocument] = _DOCUMENTS.validate_python(data or [])
        return documents

    async def upload_document(
        self, data: bytes, file_name: str, mime_type: str = DEFAULT_MIME_TYPE
    ) -> RemoteDocument:
        boundary = f"Boundary-{uuid.uuid4()}"
        body = _multipart(boundary, data=data, file_name=file_name, mime_type=mime_type)
        payload = await self._call(
            "POST",
            "documents",
            body=body,
            content_type=f"multipart/form-data; boundary={boundary}",
        )
        return RemoteDocument.model_validate(payload)

    async def set_favorite(self, document_id: str, is_favorite: bool) -> None:
        await self._call(
            "PUT",
            f"documents/{_seg(document_id)}/favorite",
            json_body={"is_favorite": is_favorite},
        )

    # --------------------------------------------------------------------- #
    # Reading positions
    # --------------------------------------------------------------------- #
    async def update_reading_position(
        self, document_id: str, page_number: int, progress: float
    ) -> None:
        await self._call(
            "PUT",
            f"preferences/reading-position/{_seg(document_id)}",
            json_body={"page_number": page_number, "progress": progress},
        )

    async def get_reading_positions(self) -> dict[str, RemoteReadingPosition]:
        data = await self._call("GET", "preferences/reading-positions")
        positions: dict[str, RemoteReadingPosition] = _POSITIONS.validate_python(data or {})
        return positions

    async def get_reading_position(self, document_id: str) -> RemoteReadingPosition | None:
        positions = await self.get_reading_positions()
        return positions.get(document_id)

    # --------------------------------------------------------------------- #
    # Internal helpers (test seams)
    # --------------------------------------------------------------------- #
    async def _call(
        self,
        method: str,
        path: str,
        *,
        query: Mapping[str, str] | None = None,
        json_body: Mapping[str, Any] | None = None,
        body: bytes | None = None,
        content_type: str | None = None,
    ) -> Any:
        token = self.token_provider.bearer_token()
        if not token:
            raise AuthTokenMissingError("no bearer token available")

        headers = {"Accept": "application/json", "Authorization": f"Bearer {token}"}
        if json_body is not None:
            body = json.dumps(json_body).encode("utf-8")
            content_type = "application/json"
        if content_type:
            headers["Content-Type"] = content_type

        url = self._url(path, query)
        return await asyncio.to_thread(
            self._request, method=method, url=url, headers=headers, body=body
        )

    def _url(self, path: str, query: Mapping[str, str] | None) -> str:
        url = f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"
        if query:
            url = f"{url}?{urllib.parse.urlencode(query)}"
        return url

    def _request(
        self,
        *,
        method: str,
        url: str,
        headers: Mapping[str, str],
        body: bytes | None,
    ) -> Any:
        """Perform one blocking HTTP request and decode the JSON response.

        An empty body decodes to ``None``. This is the single place that
        touches the network; tests replace it on the class.

        Raises
        ------
        RemoteServiceError
            Non-2xx response; the message is the backend's ``error`` field
            when present.
        NetworkUnavailableError
            Connection-level failure or timeout.
        """
        request = urllib.request.Request(url=url, data=body, headers=dict(headers), method=method)
        try:
            with urllib.request.urlopen(request, timeout=self.timeout_seconds) as resp:
                raw = resp.read()
        except urllib.error.HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="ignore")
            raise RemoteServiceError(exc.code, _error_message(detail, exc.reason)) from exc
        except urllib.error.URLError as exc:
            raise NetworkUnavailableError(f"{method} {url}: {exc.reason}") from exc
        except (TimeoutError, OSError) as exc:
            raise NetworkUnavailableError(f"{method} {url}: {exc}") from exc

        if not raw.strip():
            return None
        try:
            return json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError as exc:
            raise RemoteServiceError(200, "response body is not valid JSON") from exc


def _seg(value: str) -> str:
    """Percent-encode one path segment."""
    return urllib.parse.quote(value, safe="")


def _error_message(detail: str, reason: object) -> str:
    try:
        envelope = json.loads(detail)
    except json.JSONDecodeError:
        return detail.strip() or str(reason)
    if isinstance(envelope, dict) and isinstance(envelope.get("error"), str):
        return str(envelope["error"])
    return detail.strip() or str(reason)


def _multipart(boundary: str, *, data: bytes, file_name: str, mime_type: str) -> bytes:
    safe_name = file_name.replace('"', "")
    head = (
        f"--{boundary}\r\n"
        f'Content-Disposition: form-data; name="file"; filename="{safe_name}"\r\n'
        f"Content-Type: {mime_type}\r\n\r\n"
    ).encode()
    tail = f"\r\n--{boundary}--\r\n".encode()
    return head + data + tail


def guess_mime_type(file_name: str) -> str:
    """Best-effort MIME type from the file extension, defaulting to PDF."""
    guessed, _ = mimetypes.guess_type(file_name)
    return guessed or DEFAULT_MIME_TYPE


__all__ = ["RemoteClient", "guess_mime_type", "DEFAULT_MIME_TYPE"]
