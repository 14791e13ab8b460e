from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from companion.adapters.llm import AbstractLLMClient, get_llm_client
from companion.core.auth import get_current_user
from companion.core.rate_limit import rate_limit
from companion.db.models import User
from companion.db.session import get_db
from companion.schemas.assistant import AssistantReply, AssistantRequest
from companion.services.assistant_service import AssistantService

router = APIRouter(
    prefix="/assistant",
    tags=["Assistant"],
    dependencies=[Depends(rate_limit("api_general"))],
)


def get_assistant_service(llm: AbstractLLMClient = Depends(get_llm_client)) -> AssistantService:
    return AssistantService(llm=llm)


@router.post("/chat", response_model=AssistantReply)
async def chat(
    payload: AssistantRequest,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: AssistantService = Depends(get_assistant_service),
) -> AssistantReply:
    """Ask the legal assistant.

    Args:
        payload: Conversation so far (last turn from the user) and answer style.

    Returns:
        AssistantReply: Markdown answer, follow-up suggestions and a disclaimer.

    Raises:
        403 past the FREEMIUM assistant quota, 500 ``llm_error`` when the
        model fails, 503 ``assistant_unavailable`` when no model is configured.
    """
    return await service.chat(db, user, payload)
