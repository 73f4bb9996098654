"""
Search endpoint: hybrid full-text + semantic search over processed chunks.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Header

from caselens.api.dependencies import check_project_access, get_services
from caselens.container import Services
from caselens.logging_config import get_logger
from caselens.schemas.retrieval import SearchRequest, SearchResponse

log = get_logger(__name__)

router = APIRouter(prefix="/search", tags=["Search"])


@router.post("", response_model=SearchResponse)
async def search(
    request: SearchRequest,
    services: Services = Depends(get_services),
    x_user_id: Optional[str] = Header(default=None),
) -> SearchResponse:
    """
    Search a project's documents.

    - **query**: Natural-language or websearch-style query (required)
    - **file_type**: Restrict to one coarse file type
    - **match_count**: Number of results (default: 8)
    - **full_text_weight** / **semantic_weight**: Override the fusion weights
    - **rrf_k**: Override the rank-fusion damping constant
    """
    await check_project_access(services, x_user_id, request.project_id)
    log.info("search_endpoint_called", project_id=str(request.project_id), match_count=request.match_count)
    results = await services.search.search_documents(
        request.query,
        project_id=request.project_id,
        file_type=request.file_type,
        limit=request.match_count,
        full_text_weight=request.full_text_weight,
        semantic_weight=request.semantic_weight,
        rrf_k=request.rrf_k,
    )
    return SearchResponse(query=request.query, results=results)
