"""
Procura Conversations Router

    POST /api/v1/conversations                                   create
    GET  /api/v1/conversations/{id}                              fetch with messages
    POST /api/v1/conversations/{id}/messages                     submit -> {messageId}
    GET  /api/v1/conversations/{id}/messages/{messageId}/stream  SSE event stream

Submitting only parks the text; the turn runs when the stream is opened.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel

from config import runtime_config
from errors import ErrorCode, NotFoundError, ValidationError
from models import Conversation
from routers.chat_streaming import EventStreamAdapter
from services.database import Database
from services.pending_store import PendingMessageStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1/conversations", tags=["conversations"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


class SendMessageRequest(BaseModel):
    message: str


class SendMessageResponse(BaseModel):
    messageId: str


class TitleRequest(BaseModel):
    title: Optional[str] = None


# =============================================================================
# DEPENDENCIES
# =============================================================================


def get_db(request: Request) -> Database:
    return request.app.state.db


def get_pending_store(request: Request) -> PendingMessageStore:
    return request.app.state.pending_store


def get_stream_adapter(request: Request) -> EventStreamAdapter:
    return request.app.state.stream_adapter


async def _require_conversation(db: Database, conversation_id: str) -> Conversation:
    conversation = await db.get_conversation(conversation_id)
    if conversation is None:
        raise NotFoundError("Conversation not found", resource_type="conversation", resource_id=conversation_id)
    return conversation


def validate_message(text: str, max_length: int) -> str:
    """Reject blank or over-long text before any model call."""
    if not text or not text.strip():
        raise ValidationError(
            "Message cannot be empty", parameter="message", code=ErrorCode.VALIDATION_EMPTY_MESSAGE
        )
    if len(text) > max_length:
        raise ValidationError(
            "Message is too long",
            details=f"Maximum length is {max_length} characters",
            parameter="message",
            expected=f"<= {max_length} characters",
            received=f"{len(text)} characters",
            code=ErrorCode.VALIDATION_MESSAGE_TOO_LONG,
        )
    return text.strip()


# =============================================================================
# ROUTES
# =============================================================================


@router.post("", status_code=201)
async def create_conversation(body: Optional[TitleRequest] = None, db: Database = Depends(get_db)) -> Dict[str, Any]:
    conversation = await db.create_conversation(title=body.title if body else None)
    logger.info(f"Conversation created: {conversation.id}")
    return conversation.to_dict()


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, db: Database = Depends(get_db)) -> Dict[str, Any]:
    conversation = await _require_conversation(db, conversation_id)
    messages = await db.list_messages(conversation_id)
    user = await db.get_user(conversation.user_id) if conversation.user_id else None
    return conversation.to_dict(messages=messages, user=user)


@router.post("/{conversation_id}/messages", response_model=SendMessageResponse)
async def send_message(
    conversation_id: str,
    body: SendMessageRequest,
    db: Database = Depends(get_db),
    pending_store: PendingMessageStore = Depends(get_pending_store),
) -> SendMessageResponse:
    text = validate_message(body.message, runtime_config.max_message_length)
    await _require_conversation(db, conversation_id)
    token = await pending_store.enqueue(conversation_id, text)
    return SendMessageResponse(messageId=token)


@router.get("/{conversation_id}/messages/{message_id}/stream")
async def stream_message(
    conversation_id: str,
    message_id: str,
    db: Database = Depends(get_db),
    adapter: EventStreamAdapter = Depends(get_stream_adapter),
) -> StreamingResponse:
    await _require_conversation(db, conversation_id)
    text = await adapter.open(conversation_id, message_id)
    return StreamingResponse(
        adapter.stream(conversation_id, text),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
