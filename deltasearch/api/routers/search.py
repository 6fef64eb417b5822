"""
Search API endpoints.

Routes: GET /search/{index_name}

Any query parameter other than q, limit and offset is an attribute
filter; repeating a parameter matches any of its values.

Dependencies: deltasearch.application.services, deltasearch.models
System role: Search HTTP API
"""

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from deltasearch.api.deps import get_indexing_service
from deltasearch.application.services import IndexingService
from deltasearch.core.exceptions import IndexConfigurationError, IndexNotFoundError
from deltasearch.models.search import SearchResponse

router = APIRouter(prefix="/search", tags=["search"])

RESERVED_PARAMS = frozenset({"q", "limit", "offset"})


def _filters(request: Request) -> dict:
    filters = {}
    for key in dict.fromkeys(request.query_params.keys()):
        if key in RESERVED_PARAMS:
            continue
        values = request.query_params.getlist(key)
        filters[key] = values if len(values) > 1 else values[0]
    return filters


@router.get("/{index_name}", response_model=SearchResponse)
async def search_index(
    index_name: str,
    request: Request,
    q: str = Query(default="", description="Free text query; empty lists all documents"),
    limit: int | None = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    service: IndexingService = Depends(get_indexing_service),
) -> SearchResponse:
    """
    Search the merged core+delta view of an index.

    Raises:
        HTTPException(404): Index not found
        HTTPException(503): Index disabled by a configuration error
    """
    try:
        results = await service.search(index_name, q, _filters(request), limit, offset)
    except IndexNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except IndexConfigurationError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return SearchResponse.from_results(results)
