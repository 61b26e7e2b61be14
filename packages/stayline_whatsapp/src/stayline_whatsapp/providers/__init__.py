"""
WhatsApp Providers

Outbound transport implementations.
Supports Meta Cloud API (production) and Stub (development).
"""

from stayline_whatsapp.providers.base import (
    MessageType,
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
)

__all__ = [
    "WhatsAppProvider",
    "ProviderResponse",
    "MessageType",
    "ProviderError",
]
