"""
WhatsApp Routing

Account resolution and conversation resolution.
"""

from stayline_whatsapp.routing.account_resolver import AccountResolver, encrypt_access_token
from stayline_whatsapp.routing.conversation import ConversationResolver

__all__ = [
    "AccountResolver",
    "ConversationResolver",
    "encrypt_access_token",
]
