"""
Conversation endpoints, one conversation per project.
"""
import uuid
from typing import List

from fastapi import APIRouter, Depends, Response

from caselens.api.dependencies import authorize_project, get_services
from caselens.container import Services
from caselens.logging_config import get_logger
from caselens.schemas.chat import ChatMessageRead, SendMessageRequest

log = get_logger(__name__)

router = APIRouter(prefix="/projects/{project_id}/chat", tags=["Chat"], dependencies=[Depends(authorize_project)])


@router.post("", response_model=ChatMessageRead)
async def send_message(
    project_id: uuid.UUID,
    request: SendMessageRequest,
    services: Services = Depends(get_services),
):
    """
    Ask a question about the case and get the assistant's reply.

    Returns 204 when the conversation was cleared before the reply was ready.
    """
    log.info("chat_endpoint_called", project_id=str(project_id), effort_level=request.effort_level.value)
    message = await services.chat.send_message(
        project_id,
        request.content,
        file_context=request.file_context,
        effort_level=request.effort_level,
    )
    if message is None:
        return Response(status_code=204)
    return message


@router.get("", response_model=List[ChatMessageRead])
async def list_messages(project_id: uuid.UUID, services: Services = Depends(get_services)) -> List[ChatMessageRead]:
    return await services.chat.list_messages(project_id)


@router.delete("", status_code=204)
async def clear_conversation(project_id: uuid.UUID, services: Services = Depends(get_services)) -> Response:
    await services.chat.clear_conversation(project_id)
    return Response(status_code=204)
