"""Chat API router: website widget and conversation admin.
/api/v1/chat"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from korvalia.api.deps import get_chatbot_service, get_conversation_store
from korvalia.api.responses import ok
from korvalia.core.exceptions import NotFoundError
from korvalia.schemas.base_schema import ApiResponse, Meta
from korvalia.schemas.chat_schema import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatStatus,
    ContactCreate,
    Conversation,
    ConversationDetail,
    ConversationList,
    StatusUpdate,
)
from korvalia.services.chatbot_service import ChatbotService
from korvalia.services.conversation_store import ConversationStore

router = APIRouter()


# ---------------------------------------------------------------------------
# Widget
# ---------------------------------------------------------------------------

@router.post("/message", response_model=ApiResponse[ChatResponse])
async def send_message(
    payload: ChatRequest,
    request: Request,
    chatbot: ChatbotService = Depends(get_chatbot_service),
):
    response = await chatbot.process_message(payload.session_id, payload.message, payload.property_id)
    return ok(response, "Message processed", request)


@router.get("/history/{session_id}", response_model=ApiResponse[List[ChatMessage]])
async def get_history(session_id: str, request: Request, store: ConversationStore = Depends(get_conversation_store)):
    messages = await store.get_history(session_id)
    return ok(messages, f"{len(messages)} messages", request)


@router.post("/contact", response_model=ApiResponse[Conversation])
async def save_contact(
    payload: ContactCreate,
    request: Request,
    store: ConversationStore = Depends(get_conversation_store),
):
    """Store the visitor's contact details left through the widget form."""
    conversation = await store.save_visitor_contact(
        payload.session_id,
        name=payload.name,
        email=payload.email,
        phone=payload.phone,
    )
    return ok(conversation, "Datos de contacto guardados", request)


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------

@router.get("/conversations", response_model=ApiResponse[ConversationList])
async def list_conversations(
    request: Request,
    status: Optional[ChatStatus] = Query(None),
    has_contact: bool = Query(False, alias="hasContact"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    store: ConversationStore = Depends(get_conversation_store),
):
    result = await store.list_conversations(status=status, has_contact=has_contact, limit=limit, offset=offset)
    meta = Meta(page=offset // limit + 1, page_size=limit, total=result.total)
    return ok(result, f"{result.total} conversations", request, meta)


@router.get("/conversations/{conversation_id}", response_model=ApiResponse[ConversationDetail])
async def get_conversation(
    conversation_id: str,
    request: Request,
    store: ConversationStore = Depends(get_conversation_store),
):
    conversation = await store.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError(f"Conversation {conversation_id} not found")
    return ok(conversation, "Conversation found", request)


@router.put("/conversations/{conversation_id}/status", response_model=ApiResponse[Conversation])
async def update_status(
    conversation_id: str,
    payload: StatusUpdate,
    request: Request,
    store: ConversationStore = Depends(get_conversation_store),
):
    conversation = await store.set_status(conversation_id, payload.status)
    return ok(conversation, f"Status updated to {payload.status.value}", request)
