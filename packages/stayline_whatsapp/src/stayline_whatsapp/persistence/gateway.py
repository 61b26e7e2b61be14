"""
Persistence Gateway

Storage contract consumed by the pipeline. Expected "not found" cases return
None/False; storage errors are also reported as None/False so one failing
call never raises through the orchestrator.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from stayline_whatsapp.contracts.records import NormalizedMessage, PropertyInfo
from stayline_whatsapp.persistence.models import Conversation, Message, MessageDirection, WhatsAppAccount


class PersistenceGateway(ABC):
    """
    Abstract storage interface for the inbound pipeline.

    Implementations must make find_or_create_conversation atomic: two
    concurrent calls for the same (account, customer phone) return the
    same conversation id.
    """

    @abstractmethod
    def find_account_by_phone_number_id(self, phone_number_id: str) -> WhatsAppAccount | None:
        """Active account for a Meta phone number id."""
        ...

    @abstractmethod
    def find_or_create_conversation(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
        business_phone: str,
    ) -> int | None:
        """Conversation id for the pair, creating it on first contact. None on failure."""
        ...

    @abstractmethod
    def is_message_processed(self, whatsapp_message_id: str) -> bool:
        """True if a message with this provider id is already stored."""
        ...

    @abstractmethod
    def insert_message(
        self,
        conversation_id: int,
        message: NormalizedMessage,
        is_auto_response: bool = False,
        needs_manual_review: bool = False,
        ai_confidence_score: float | None = None,
        ai_processing_error: str | None = None,
    ) -> tuple[Message | None, bool]:
        """
        Store a message and report whether this call created the row.

        A duplicate provider id returns (existing row, False). Returns
        (None, False) on failure.
        """
        ...

    @abstractmethod
    def update_message_by_provider_id(self, whatsapp_message_id: str, **fields: Any) -> bool:
        """Update columns of a stored message. False if no row matched or on failure."""
        ...

    @abstractmethod
    def update_conversation_metadata(
        self,
        conversation_id: int,
        direction: MessageDirection,
        timestamp: datetime,
        needs_manual_review: bool = False,
    ) -> bool:
        """Record the latest message direction/time and the review flag."""
        ...

    @abstractmethod
    def flag_conversation_for_intervention(self, conversation_id: int, reason: str) -> bool:
        """Mark a conversation as needing a human, with a readable reason."""
        ...

    @abstractmethod
    def find_property_link(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> PropertyInfo | None:
        """Live (not unlinked) property link for a guest phone."""
        ...

    @abstractmethod
    def is_auto_respond_enabled(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> bool:
        """True only if a live link exists with auto-respond switched on."""
        ...

    @abstractmethod
    def get_conversation(self, conversation_id: int) -> Conversation | None:
        ...

    @abstractmethod
    def get_recent_messages(self, conversation_id: int, limit: int = 20) -> list[Message]:
        """The latest ``limit`` messages in chronological order."""
        ...

    @abstractmethod
    def attach_property_link(self, conversation_id: int, link_id: int | None) -> None:
        """Record the property link a conversation is being answered under."""
        ...
