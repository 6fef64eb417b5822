"""
Search schemas.

Dependencies: pydantic
System role: Search API contracts
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from deltasearch.core.indexing.merger import SearchResults


class SearchHitResponse(BaseModel):
    """One ranked document."""

    id: str
    score: float
    source: str = Field(description="Segment that served the document (core or delta)")
    version: datetime
    fields: dict[str, str]
    attributes: dict[str, Any]
    matched_terms: list[str] = Field(default_factory=list)


class SearchResponse(BaseModel):
    """Page of merged search results."""

    index_name: str
    query: str
    total: int
    limit: int
    offset: int
    degraded: bool = Field(description="True when a segment was unreadable and skipped")
    warnings: list[str] = Field(default_factory=list)
    hits: list[SearchHitResponse]

    @classmethod
    def from_results(cls, results: SearchResults) -> "SearchResponse":
        return cls(
            index_name=results.index_name,
            query=results.query,
            total=results.total,
            limit=results.limit,
            offset=results.offset,
            degraded=results.degraded,
            warnings=results.warnings,
            hits=[
                SearchHitResponse(
                    id=hit.id,
                    score=hit.score,
                    source=hit.source.value,
                    version=hit.document.version,
                    fields=hit.document.fields,
                    attributes=hit.document.attributes,
                    matched_terms=list(hit.matched_terms),
                )
                for hit in results.hits
            ],
        )
