"""
API Routes for offline copies, queue flushing and the library view.

Endpoints
---------
- `GET /offline/{document_id}`: current offline status.
- `POST /offline/{document_id}`: pin and start the background download.
- `DELETE /offline/{document_id}`: unpin and delete the local copy.
- `POST /offline/{document_id}/retry`: restart a run that reported "Try again".
- `GET /offline/{document_id}/pages`: cache-first page load.
- `POST /sync/flush`: push queued positions and uploads.
- `GET /library`: documents from the offline index (optionally refreshed).

`POST /offline/{id}` returns as soon as the run is scheduled; clients poll
`GET /offline/{id}` for progress.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, status

from shelfsync.api.schemas import FlushReportModel, FlushResponse, PagesResponse
from shelfsync.core.contracts.document import DocumentSummary
from shelfsync.core.contracts.status import OfflineStatus
from shelfsync.core.errors import OfflineCopyUnavailableError
from shelfsync.engine import Engine

router = APIRouter()


def get_engine(request: Request) -> Engine:
    engine: Engine = request.app.state.engine
    return engine


EngineDep = Annotated[Engine, Depends(get_engine)]


@router.get(
    "/offline/{document_id}",
    response_model=OfflineStatus,
    tags=["Offline"],
    summary="Get offline status",
)
async def get_offline_status(document_id: str, engine: EngineDep) -> OfflineStatus:
    return engine.coordinator.status(document_id)


@router.post(
    "/offline/{document_id}",
    response_model=OfflineStatus,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Offline"],
    summary="Keep a document offline",
)
async def enable_offline(document_id: str, engine: EngineDep) -> OfflineStatus:
    """Pin the document. The download runs in the background."""
    result = engine.coordinator.enable(document_id)
    if result.is_err():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.unwrap_err()
        )
    return result.unwrap()


@router.delete(
    "/offline/{document_id}",
    response_model=OfflineStatus,
    tags=["Offline"],
    summary="Stop keeping a document offline",
)
async def disable_offline(document_id: str, engine: EngineDep) -> OfflineStatus:
    result = engine.coordinator.disable(document_id)
    if result.is_err():
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=result.unwrap_err()
        )
    return result.unwrap()


@router.post(
    "/offline/{document_id}/retry",
    response_model=OfflineStatus,
    status_code=status.HTTP_202_ACCEPTED,
    tags=["Offline"],
    summary="Restart a download that gave up",
)
async def retry_offline(document_id: str, engine: EngineDep) -> OfflineStatus:
    result = engine.coordinator.retry(document_id)
    if result.is_err():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=result.unwrap_err())
    return result.unwrap()


@router.get(
    "/offline/{document_id}/pages",
    response_model=PagesResponse,
    tags=["Offline"],
    summary="Load pages, preferring the offline copy",
)
async def get_pages(document_id: str, engine: EngineDep) -> PagesResponse:
    try:
        loaded = await engine.reader.load(document_id)
    except OfflineCopyUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="offline copy unavailable",
        ) from exc
    return PagesResponse.from_loaded(loaded)


@router.post(
    "/sync/flush",
    response_model=FlushResponse,
    tags=["Sync"],
    summary="Flush queued positions and uploads",
)
async def flush_queues(engine: EngineDep) -> FlushResponse:
    positions, uploads = await engine.reconciler.flush_all()
    return FlushResponse(
        positions=FlushReportModel.from_report(positions),
        uploads=FlushReportModel.from_report(uploads),
    )


@router.get(
    "/library",
    response_model=list[DocumentSummary],
    tags=["Library"],
    summary="List documents from the offline index",
)
async def get_library(engine: EngineDep, refresh: bool = False) -> list[DocumentSummary]:
    """Return the cached library; ``refresh=true`` pulls the listing first.

    A failed refresh still answers with the cached view.
    """
    if refresh:
        await engine.library.refresh()
    return engine.library.books


__all__ = ["router", "get_engine"]
