"""
WhatsApp Provider Base

Abstract interface for the outbound message transport.
Implementations: Meta Cloud API, Stub (for development).
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from stayline_whatsapp.errors import ExternalServiceFailure

# Graph API error code for an expired/invalid access token
TOKEN_EXPIRED_CODE = "190"


class ProviderError(ExternalServiceFailure):
    """Error from WhatsApp provider."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool = False,
    ):
        super().__init__(message, code=code, details=details)
        self.retryable = retryable

    @property
    def token_expired(self) -> bool:
        return self.code == TOKEN_EXPIRED_CODE


class MessageType(str, Enum):
    """Types of WhatsApp messages."""

    TEXT = "text"
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    LOCATION = "location"
    CONTACTS = "contacts"
    STICKER = "sticker"
    REACTION = "reaction"
    INTERACTIVE = "interactive"
    BUTTON = "button"
    UNKNOWN = "unknown"

    @classmethod
    def from_provider(cls, value: str | None) -> "MessageType":
        try:
            return cls(value or "unknown")
        except ValueError:
            return cls.UNKNOWN


@dataclass
class ProviderResponse:
    """
    Response from provider after sending a message.
    """

    message_id: str
    raw_response: dict[str, Any] = field(default_factory=dict)


class WhatsAppProvider(ABC):
    """
    Abstract interface for WhatsApp API providers.

    send_text returns the provider message id or raises ProviderError.
    """

    @abstractmethod
    async def send_text(
        self,
        phone_number_id: str,
        access_token: str,
        to: str,
        text: str,
        reply_to: str | None = None,
        preview_url: bool = False,
    ) -> ProviderResponse:
        """
        Send a text message.

        Args:
            phone_number_id: Business phone number ID
            access_token: Access token for this number
            to: Recipient phone number (E.164 format)
            text: Message text
            reply_to: Message ID to reply to (optional)
            preview_url: Whether to show URL previews

        Returns:
            ProviderResponse with the provider message ID

        Raises:
            ProviderError: if the provider rejected or never received the request
        """
        ...

    async def close(self) -> None:
        """Release network resources."""
        return None
