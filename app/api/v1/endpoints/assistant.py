"""AI assistant endpoints."""

from fastapi import APIRouter

from app.dependencies import AIClientDep, CurrentUser
from app.schemas.assistant import (
    ChatRequest,
    ChatResponse,
    ColumnMapping,
    ColumnMappingRequest,
    ConversationSummaryRequest,
    ConversationSummaryResponse,
)
from app.services.assistant_service import AssistantService

router = APIRouter(prefix="/assistant", tags=["Assistant"])


@router.post("/chat", response_model=ChatResponse, summary="Chat with the assistant")
async def chat(data: ChatRequest, current_user: CurrentUser, ai_client: AIClientDep) -> ChatResponse:
    """
    Reply to a conversation as PHYSIA AI.

    Returns 504 when the model does not answer within the configured
    timeout and 503 when no provider key is configured.
    """
    return await AssistantService(ai_client).chat(data)


@router.post(
    "/column-mapping", response_model=ColumnMapping, summary="Suggest import column mapping"
)
async def column_mapping(
    data: ColumnMappingRequest, current_user: CurrentUser, ai_client: AIClientDep
) -> ColumnMapping:
    """Which spreadsheet column feeds each client field; unknown headers are dropped."""
    return await AssistantService(ai_client).map_columns(data)


@router.post(
    "/conversation-summary",
    response_model=ConversationSummaryResponse,
    summary="Summarize a conversation",
)
async def conversation_summary(
    data: ConversationSummaryRequest, current_user: CurrentUser, ai_client: AIClientDep
) -> ConversationSummaryResponse:
    """Short summary of a WhatsApp conversation with a client."""
    return await AssistantService(ai_client).summarize_conversation(data)
