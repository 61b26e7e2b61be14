"""
Conversation Resolution

Finds or creates the conversation for a guest phone and reads its
property/auto-respond linkage.
"""

import logging

from stayline_whatsapp.contracts.records import PropertyInfo
from stayline_whatsapp.persistence.gateway import PersistenceGateway

logger = logging.getLogger(__name__)


class ConversationResolver:
    """
    Resolves conversations for one business account.

    Atomicity of find-or-create is the gateway's job; this class only
    turns its absent signals into log lines.
    """

    def __init__(self, gateway: PersistenceGateway):
        self.gateway = gateway

    def resolve(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
        business_phone: str,
    ) -> int | None:
        """Conversation id for (account, customer phone), or None on failure."""
        conversation_id = self.gateway.find_or_create_conversation(
            user_id=user_id,
            account_id=account_id,
            customer_phone=customer_phone,
            business_phone=business_phone,
        )

        if conversation_id is None:
            logger.error(
                "Conversation could not be resolved",
                extra={"account_id": account_id, "customer_phone": customer_phone},
            )

        return conversation_id

    def property_for(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> PropertyInfo | None:
        """Live property link for the guest phone, if any."""
        return self.gateway.find_property_link(user_id, account_id, customer_phone)

    def auto_respond_enabled(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> bool:
        return self.gateway.is_auto_respond_enabled(user_id, account_id, customer_phone)
