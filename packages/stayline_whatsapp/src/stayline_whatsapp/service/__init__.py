"""
Stayline Service Layer

Inbound pipeline orchestration, reply drafting and manual sends.
"""

from stayline_whatsapp.service.confidence import ConfidenceGate
from stayline_whatsapp.service.inbound_handler import (
    MessageOutcome,
    ProcessingState,
    ResponseOrchestrator,
    WebhookResult,
)
from stayline_whatsapp.service.normalizer import normalize_message
from stayline_whatsapp.service.outbound_handler import OutboundHandler, get_provider
from stayline_whatsapp.service.reply_generator import ReplyGenerator

__all__ = [
    "ConfidenceGate",
    "MessageOutcome",
    "ProcessingState",
    "ResponseOrchestrator",
    "WebhookResult",
    "normalize_message",
    "OutboundHandler",
    "get_provider",
    "ReplyGenerator",
]
