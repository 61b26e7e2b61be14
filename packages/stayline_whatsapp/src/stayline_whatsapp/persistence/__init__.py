"""
Stayline Persistence

SQLAlchemy models, the gateway contract consumed by the pipeline, and its
repository implementation.
"""

from stayline_whatsapp.persistence.gateway import PersistenceGateway
from stayline_whatsapp.persistence.models import (
    AccountStatus,
    Conversation,
    ConversationStatus,
    Message,
    MessageDirection,
    MessageStatus,
    Property,
    PropertyLink,
    WhatsAppAccount,
)
from stayline_whatsapp.persistence.repo import WhatsAppRepository

__all__ = [
    "PersistenceGateway",
    "WhatsAppRepository",
    "AccountStatus",
    "Conversation",
    "ConversationStatus",
    "Message",
    "MessageDirection",
    "MessageStatus",
    "Property",
    "PropertyLink",
    "WhatsAppAccount",
]
