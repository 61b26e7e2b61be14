"""
Stayline Contracts

Webhook payload models, change variants and pipeline result types.
"""

from stayline_whatsapp.contracts.payloads import (
    ChangeField,
    ChangeVariant,
    MessagesChange,
    TemplateStatusChange,
    UnrecognizedChange,
    WebhookContact,
    WebhookMetadata,
    WebhookPayload,
    WebhookStatus,
)
from stayline_whatsapp.contracts.results import AIResponseResult, GateDecision, StepResult

__all__ = [
    "ChangeField",
    "ChangeVariant",
    "MessagesChange",
    "TemplateStatusChange",
    "UnrecognizedChange",
    "WebhookContact",
    "WebhookMetadata",
    "WebhookPayload",
    "WebhookStatus",
    "AIResponseResult",
    "GateDecision",
    "StepResult",
]
