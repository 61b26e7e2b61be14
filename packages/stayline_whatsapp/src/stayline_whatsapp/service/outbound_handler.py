"""
Outbound Message Handler

Operator-initiated replies:
1. Loads the conversation and its business account
2. Unwraps the account access token
3. Sends the text via the provider
4. Stores it as a manual outbound message and clears the review flag
"""

import logging
from datetime import datetime, timezone

from stayline_whatsapp.contracts.records import NormalizedMessage
from stayline_whatsapp.errors import LookupFailure, MessageValidationError, PersistenceFailure
from stayline_whatsapp.persistence.models import Message, MessageDirection
from stayline_whatsapp.persistence.repo import WhatsAppRepository
from stayline_whatsapp.providers.base import MessageType, ProviderError, WhatsAppProvider
from stayline_whatsapp.providers.meta_cloud import MetaCloudWhatsAppProvider
from stayline_whatsapp.providers.stub import StubWhatsAppProvider
from stayline_whatsapp.routing.account_resolver import AccountResolver

logger = logging.getLogger(__name__)


def get_provider(provider_type: str | None = None, api_version: str = "v18.0", timeout: float = 30.0) -> WhatsAppProvider:
    """
    Get the configured WhatsApp provider.

    ``meta`` for the Graph API, anything else falls back to the stub.
    """
    if provider_type == "meta":
        return MetaCloudWhatsAppProvider(timeout=timeout, api_version=api_version)
    return StubWhatsAppProvider()


class OutboundHandler:
    """
    Sends operator replies from the operator API and the CLI.
    """

    def __init__(
        self,
        repo: WhatsAppRepository,
        provider: WhatsAppProvider,
        encryption_key: str | None = None,
    ):
        self.repo = repo
        self.provider = provider
        self.accounts = AccountResolver(repo, encryption_key=encryption_key)

    async def send_manual_reply(self, conversation_id: int, text: str) -> Message:
        """
        Send ``text`` to the guest of a conversation.

        Raises:
            MessageValidationError: empty text
            LookupFailure: unknown conversation or account, or no usable token
            ProviderError: the provider rejected the send
            PersistenceFailure: sent, but the outbound row could not be stored
        """
        body = (text or "").strip()
        if not body:
            raise MessageValidationError("Message content is required", code="empty_message")

        conversation = self.repo.get_conversation(conversation_id)
        if conversation is None:
            raise LookupFailure("Conversation not found", code="conversation_not_found")

        account = self.repo.get_account(conversation.whatsapp_account_id)
        if account is None:
            raise LookupFailure(
                "WhatsApp account not found for this conversation",
                code="account_not_found",
            )

        access_token = self.accounts.get_access_token(account)
        if not access_token:
            raise LookupFailure("WhatsApp access token is not available", code="no_access_token")

        try:
            response = await self.provider.send_text(
                phone_number_id=account.phone_number_id,
                access_token=access_token,
                to=conversation.customer_phone_number,
                text=body,
            )
        except ProviderError as e:
            logger.error(
                f"Manual send failed: {e}",
                extra={"conversation_id": conversation_id, "code": e.code},
            )
            raise

        now = datetime.now(timezone.utc)
        outbound = NormalizedMessage(
            whatsapp_message_id=response.message_id,
            direction=MessageDirection.OUTBOUND.value,
            from_phone_number=account.display_phone_number,
            to_phone_number=conversation.customer_phone_number,
            message_type=MessageType.TEXT.value,
            timestamp_whatsapp=now,
            content={"type": "text", "text": {"body": body}},
            message_text=body,
        )

        stored, _ = self.repo.insert_message(
            conversation_id,
            outbound,
            is_auto_response=False,
            needs_manual_review=False,
        )
        if stored is None:
            raise PersistenceFailure(
                "Message sent but failed to save to database",
                code="persistence_failed",
                details={"whatsapp_message_id": response.message_id},
            )

        self.repo.update_conversation_metadata(
            conversation_id,
            MessageDirection.OUTBOUND,
            now,
            needs_manual_review=False,
        )

        logger.info(
            "Manual reply sent",
            extra={"conversation_id": conversation_id, "whatsapp_message_id": response.message_id},
        )
        return stored
