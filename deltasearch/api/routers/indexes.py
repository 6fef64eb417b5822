"""
Index API endpoints.

Routes: GET /indexes, GET /indexes/{name},
        POST /indexes/{name}/delta, POST /indexes/{name}/rebuild

Dependencies: deltasearch.application.services, deltasearch.models
System role: Index status and build request HTTP API
"""

from fastapi import APIRouter, Depends, HTTPException, status

from deltasearch.api.deps import get_indexing_service
from deltasearch.application.services import IndexingService
from deltasearch.boundary.db.models.job_model import TriggerReason
from deltasearch.boundary.search.segment import SegmentKind
from deltasearch.core.exceptions import IndexConfigurationError, IndexNotFoundError
from deltasearch.models.index import IndexStatusResponse
from deltasearch.models.job import EnqueueResponse

router = APIRouter(prefix="/indexes", tags=["indexes"])


@router.get("", response_model=list[IndexStatusResponse])
async def list_indexes(
    service: IndexingService = Depends(get_indexing_service),
) -> list[IndexStatusResponse]:
    """List every registered index with its segment and backlog status."""
    return [IndexStatusResponse.from_status(s) for s in await service.statuses()]


@router.get("/{index_name}", response_model=IndexStatusResponse)
async def get_index(
    index_name: str,
    service: IndexingService = Depends(get_indexing_service),
) -> IndexStatusResponse:
    """
    Get the status of one index.

    Raises:
        HTTPException(404): Index not found
    """
    try:
        return IndexStatusResponse.from_status(await service.status(index_name))
    except IndexNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)


async def _enqueue(
    service: IndexingService,
    index_name: str,
    target: SegmentKind,
) -> EnqueueResponse:
    try:
        job, created = await service.enqueue(index_name, target, TriggerReason.MANUAL)
    except IndexNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except IndexConfigurationError as e:
        raise HTTPException(status_code=409, detail=e.message)
    return EnqueueResponse(
        job_id=job.id,
        index_name=job.index_name,
        target=job.target.value,
        status=job.status.value,
        coalesced=not created,
    )


@router.post(
    "/{index_name}/delta",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_delta_build(
    index_name: str,
    service: IndexingService = Depends(get_indexing_service),
) -> EnqueueResponse:
    """
    Queue a delta build. Poll GET /jobs/{job_id} for the outcome.

    Raises:
        HTTPException(404): Index not found
        HTTPException(409): Index disabled or without a delta segment
    """
    return await _enqueue(service, index_name, SegmentKind.DELTA)


@router.post(
    "/{index_name}/rebuild",
    response_model=EnqueueResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
async def request_core_rebuild(
    index_name: str,
    service: IndexingService = Depends(get_indexing_service),
) -> EnqueueResponse:
    """
    Queue a full core rebuild.

    Raises:
        HTTPException(404): Index not found
        HTTPException(409): Index disabled
    """
    return await _enqueue(service, index_name, SegmentKind.CORE)
