"""
Operator API

JSON endpoints for the host's inbox: list conversations, read messages,
send a manual reply, and preview an AI draft without sending it.
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from stayline_core.settings import Settings, get_settings

from stayline_whatsapp.errors import LookupFailure, MessageValidationError, PersistenceFailure
from stayline_whatsapp.persistence.models import Conversation, Message
from stayline_whatsapp.persistence.repo import WhatsAppRepository
from stayline_whatsapp.providers.base import ProviderError
from stayline_whatsapp.service.outbound_handler import OutboundHandler
from stayline_whatsapp.service.reply_generator import ReplyGenerator

from whatsapp_webhook.deps import get_outbound_handler, get_reply_generator, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations", tags=["conversations"])


class MessageRequest(BaseModel):
    message: str = ""


def _iso(value) -> str | None:
    return value.isoformat() if value else None


def _conversation_to_dict(conversation: Conversation, property_name: str | None = None) -> dict[str, Any]:
    return {
        "id": conversation.id,
        "whatsapp_account_id": conversation.whatsapp_account_id,
        "customer_phone_number": conversation.customer_phone_number,
        "business_phone_number": conversation.business_phone_number,
        "property_name": property_name,
        "last_message_at": _iso(conversation.last_message_at),
        "last_message_direction": conversation.last_message_direction,
        "unread_count": conversation.unread_count or 0,
        "requires_manual_intervention": bool(conversation.requires_manual_intervention),
        "intervention_reason": conversation.intervention_reason,
        "status": conversation.status,
    }


def _message_to_dict(message: Message) -> dict[str, Any]:
    return {
        "id": message.id,
        "whatsapp_message_id": message.whatsapp_message_id,
        "direction": message.direction,
        "from_phone_number": message.from_phone_number,
        "to_phone_number": message.to_phone_number,
        "message_type": message.message_type,
        "message_text": message.message_text,
        "status": message.status,
        "error_message": message.error_message,
        "is_auto_response": bool(message.is_auto_response),
        "needs_manual_review": bool(message.needs_manual_review),
        "ai_confidence_score": message.ai_confidence_score,
        "ai_processing_error": message.ai_processing_error,
        "ai_draft_response": message.ai_draft_response,
        "ai_reasoning": message.ai_reasoning,
        "contact_name": message.contact_name,
        "timestamp_whatsapp": _iso(message.timestamp_whatsapp),
    }


def _require_text(body: MessageRequest) -> str:
    text = body.message.strip()
    if not text:
        raise HTTPException(status_code=400, detail="Message content is required")
    return text


@router.get("")
def list_conversations(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repo: WhatsAppRepository = Depends(get_repository),
):
    """Conversations by most recent activity."""
    rows = repo.list_conversations(limit=limit, offset=offset)
    conversations = [_conversation_to_dict(c, name) for c, name in rows]
    return {"success": True, "conversations": conversations, "count": len(conversations)}


@router.get("/{conversation_id}/messages")
def list_messages(
    conversation_id: int,
    repo: WhatsAppRepository = Depends(get_repository),
):
    """Messages of one conversation, oldest first."""
    if not repo.get_conversation(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")

    messages = [_message_to_dict(m) for m in repo.list_messages(conversation_id)]
    return {"success": True, "messages": messages, "count": len(messages)}


@router.post("/{conversation_id}/send-message")
async def send_message(
    conversation_id: int,
    body: MessageRequest,
    handler: OutboundHandler = Depends(get_outbound_handler),
):
    """
    Send a manual reply to the guest.

    An expired access token (Graph error 190) is reported as 401 so the
    operator knows to rotate the credential.
    """
    text = _require_text(body)

    try:
        stored = await handler.send_manual_reply(conversation_id, text)
    except MessageValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupFailure as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ProviderError as e:
        if e.token_expired:
            raise HTTPException(
                status_code=401,
                detail={
                    "error": "WhatsApp access token has expired",
                    "error_code": 190,
                    "token_expired": True,
                },
            )
        raise HTTPException(
            status_code=502,
            detail={"error": "Failed to send message via WhatsApp", "details": str(e), "error_code": e.code},
        )
    except PersistenceFailure as e:
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "success": True,
        "whatsapp_message_id": stored.whatsapp_message_id,
        "saved_message": _message_to_dict(stored),
    }


@router.post("/{conversation_id}/ai-response")
async def preview_ai_response(
    conversation_id: int,
    body: MessageRequest,
    repo: WhatsAppRepository = Depends(get_repository),
    replies: ReplyGenerator = Depends(get_reply_generator),
    settings: Settings = Depends(get_settings),
):
    """Draft and gate a reply for the given guest message. Never sends."""
    text = _require_text(body)

    conversation = repo.get_conversation(conversation_id)
    if not conversation:
        raise HTTPException(status_code=404, detail="Conversation not found")

    property_info = repo.find_property_link(
        conversation.user_id,
        conversation.whatsapp_account_id,
        conversation.customer_phone_number,
    )
    result = await replies.generate(conversation_id, text, property_info)

    if result.error:
        raise HTTPException(
            status_code=500,
            detail={"error": "AI processing failed", "details": result.error},
        )

    would_send = result.should_send and result.confidence >= settings.AUTO_SEND_CONFIDENCE_THRESHOLD
    return {
        "success": True,
        "ai_response": result.response,
        "confidence": result.confidence,
        "should_send": result.should_send,
        "would_auto_send": would_send,
        "reasoning": result.reasoning,
    }
