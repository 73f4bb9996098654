"""
Processing endpoint: (re)build a file's summary, text and chunks.
"""
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Header

from caselens.api.dependencies import check_project_access, get_services
from caselens.container import Services
from caselens.logging_config import get_logger
from caselens.schemas.processing import ProcessingResult, ProcessRequest

log = get_logger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


@router.post("/{file_id}/process", response_model=ProcessingResult)
async def process_file(
    file_id: uuid.UUID,
    request: ProcessRequest,
    services: Services = Depends(get_services),
    x_user_id: Optional[str] = Header(default=None),
) -> ProcessingResult:
    """
    Process an uploaded file synchronously and report the outcome.

    Failures are reported in the body with `status: failed`; the file row
    carries the same error.
    """
    await check_project_access(services, x_user_id, request.project_id)
    log.info("process_file_endpoint_called", file_id=str(file_id), project_id=str(request.project_id))
    return await services.processor.process(file_id, request.project_id)
