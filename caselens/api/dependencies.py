"""FastAPI dependencies: the service container and project authorization."""
import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request

from caselens.container import Services
from caselens.logging_config import get_logger

log = get_logger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


async def check_project_access(services: Services, user_id: Optional[str], project_id: uuid.UUID) -> None:
    """Raise 403 unless the access policy lets the requester use the project."""
    if not await services.access.has_project_access(user_id, project_id):
        log.warning("project_access_denied", user_id=user_id, project_id=str(project_id))
        raise HTTPException(status_code=403, detail="Not authorized to access this project")


async def authorize_project(
    request: Request,
    project_id: uuid.UUID,
    x_user_id: Optional[str] = Header(default=None),
) -> Optional[str]:
    """Dependency for routes with `project_id` in the path. Returns the user id."""
    await check_project_access(get_services(request), x_user_id, project_id)
    return x_user_id
