"""
WhatsApp Repository

SQLAlchemy implementation of the PersistenceGateway, plus the admin
queries used by the CLI and the operator API.

Every gateway call runs in its own transaction: it commits on success and
rolls back, logs and returns the absent signal on SQLAlchemyError.
"""

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stayline_whatsapp.contracts.records import NormalizedMessage, PropertyInfo
from stayline_whatsapp.persistence.gateway import PersistenceGateway
from stayline_whatsapp.persistence.models import (
    AccountStatus,
    Conversation,
    ConversationStatus,
    Message,
    MessageDirection,
    Property,
    PropertyLink,
    WhatsAppAccount,
    utcnow,
)

logger = logging.getLogger(__name__)

PROPERTY_DETAIL_FIELDS = (
    "address",
    "description",
    "wifi_password",
    "checkin_time",
    "checkout_time",
    "house_rules",
    "emergency_contact",
    "custom_instructions",
)


class WhatsAppRepository(PersistenceGateway):
    """Repository for Stayline database operations."""

    def __init__(self, db: Session):
        self.db = db

    def _insert_ignoring_conflict(
        self,
        model: type,
        values: dict[str, Any],
        conflict_columns: list[str],
    ) -> int:
        """INSERT ... ON CONFLICT DO NOTHING for the session's dialect. Returns rows inserted."""
        dialect = self.db.get_bind().dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            raise NotImplementedError(f"Unsupported dialect for upsert: {dialect}")

        # Table-level insert: keys are column names, not mapped attribute names
        stmt = insert(model.__table__).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
        return self.db.execute(stmt).rowcount

    def _rollback(self, operation: str, error: Exception, **context: Any) -> None:
        self.db.rollback()
        logger.error(
            f"Persistence failure in {operation}: {error}",
            extra={"operation": operation, **context},
        )

    # =========================================================================
    # Accounts
    # =========================================================================

    def find_account_by_phone_number_id(self, phone_number_id: str) -> WhatsAppAccount | None:
        """Get active account by WhatsApp phone number ID."""
        try:
            return (
                self.db.query(WhatsAppAccount)
                .filter(
                    WhatsAppAccount.phone_number_id == phone_number_id,
                    WhatsAppAccount.status == AccountStatus.ACTIVE.value,
                )
                .first()
            )
        except SQLAlchemyError as e:
            self._rollback("find_account_by_phone_number_id", e, phone_number_id=phone_number_id)
            return None

    def get_account(self, account_id: int) -> WhatsAppAccount | None:
        return self.db.get(WhatsAppAccount, account_id)

    def create_account(
        self,
        user_id: str,
        waba_id: str,
        phone_number_id: str,
        display_phone_number: str,
        access_token: str | None = None,
        business_name: str | None = None,
    ) -> WhatsAppAccount:
        """Create a new account. Caller commits."""
        account = WhatsAppAccount(
            user_id=user_id,
            waba_id=waba_id,
            phone_number_id=phone_number_id,
            display_phone_number=display_phone_number,
            access_token=access_token,
            business_name=business_name,
            status=AccountStatus.ACTIVE.value,
            metadata_={},
        )
        self.db.add(account)
        return account

    # =========================================================================
    # Conversations
    # =========================================================================

    def find_or_create_conversation(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
        business_phone: str,
    ) -> int | None:
        """
        Get existing conversation id or create one.

        The insert ignores the unique-constraint conflict, so concurrent
        first messages from the same guest converge on one row.
        """
        try:
            now = utcnow()
            self._insert_ignoring_conflict(
                Conversation,
                {
                    "user_id": user_id,
                    "whatsapp_account_id": account_id,
                    "customer_phone_number": customer_phone,
                    "business_phone_number": business_phone,
                    "status": ConversationStatus.ACTIVE.value,
                    "unread_count": 0,
                    "requires_manual_intervention": False,
                    "metadata": {},
                    "created_at": now,
                    "updated_at": now,
                },
                ["whatsapp_account_id", "customer_phone_number"],
            )
            conversation_id = self.db.execute(
                select(Conversation.id).where(
                    Conversation.whatsapp_account_id == account_id,
                    Conversation.customer_phone_number == customer_phone,
                )
            ).scalar_one()
            self.db.commit()
            return conversation_id
        except SQLAlchemyError as e:
            self._rollback(
                "find_or_create_conversation",
                e,
                account_id=account_id,
                customer_phone=customer_phone,
            )
            return None

    def get_conversation(self, conversation_id: int) -> Conversation | None:
        """Get conversation by ID."""
        return self.db.get(Conversation, conversation_id)

    def update_conversation_metadata(
        self,
        conversation_id: int,
        direction: MessageDirection,
        timestamp: datetime,
        needs_manual_review: bool = False,
    ) -> bool:
        """Update last-message fields and the review flag after a message."""
        try:
            conversation = self.db.get(Conversation, conversation_id)
            if not conversation:
                return False

            conversation.last_message_at = timestamp
            conversation.last_message_direction = direction.value
            conversation.requires_manual_intervention = needs_manual_review
            if not needs_manual_review:
                conversation.intervention_reason = None

            if direction == MessageDirection.INBOUND:
                conversation.unread_count = (conversation.unread_count or 0) + 1
            else:
                conversation.unread_count = 0

            self.db.commit()
            return True
        except SQLAlchemyError as e:
            self._rollback("update_conversation_metadata", e, conversation_id=conversation_id)
            return False

    def flag_conversation_for_intervention(self, conversation_id: int, reason: str) -> bool:
        """Mark conversation as needing a human."""
        try:
            conversation = self.db.get(Conversation, conversation_id)
            if not conversation:
                return False

            conversation.requires_manual_intervention = True
            conversation.intervention_reason = reason
            self.db.commit()

            logger.info(
                "Conversation flagged for intervention",
                extra={"conversation_id": conversation_id, "reason": reason},
            )
            return True
        except SQLAlchemyError as e:
            self._rollback("flag_conversation_for_intervention", e, conversation_id=conversation_id)
            return False

    def list_conversations(self, limit: int = 50, offset: int = 0) -> list[tuple[Conversation, str | None]]:
        """Conversations by most recent activity, each with its linked property name."""
        rows = (
            self.db.query(Conversation, Property.name)
            .outerjoin(PropertyLink, PropertyLink.id == Conversation.property_link_id)
            .outerjoin(Property, Property.id == PropertyLink.property_id)
            .order_by(
                Conversation.last_message_at.is_(None),
                Conversation.last_message_at.desc(),
                Conversation.created_at.desc(),
            )
            .offset(offset)
            .limit(limit)
            .all()
        )
        return [(conversation, property_name) for conversation, property_name in rows]

    def attach_property_link(self, conversation_id: int, link_id: int | None) -> None:
        """Remember which link the conversation was last answered under."""
        try:
            conversation = self.db.get(Conversation, conversation_id)
            if conversation and conversation.property_link_id != link_id:
                conversation.property_link_id = link_id
                self.db.commit()
        except SQLAlchemyError as e:
            self._rollback("attach_property_link", e, conversation_id=conversation_id)

    # =========================================================================
    # Messages
    # =========================================================================

    def get_message_by_provider_id(self, whatsapp_message_id: str) -> Message | None:
        """Get message by provider message ID."""
        return (
            self.db.query(Message)
            .filter(Message.whatsapp_message_id == whatsapp_message_id)
            .first()
        )

    def is_message_processed(self, whatsapp_message_id: str) -> bool:
        """Check if a message has already been stored (idempotency)."""
        try:
            result = self.db.execute(
                select(Message.id).where(Message.whatsapp_message_id == whatsapp_message_id).limit(1)
            )
            return result.first() is not None
        except SQLAlchemyError as e:
            self._rollback("is_message_processed", e, whatsapp_message_id=whatsapp_message_id)
            return False

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
        Insert a message, ignoring a duplicate provider id.

        Returns (row, created); created is False when another writer stored
        the provider id first.
        """
        try:
            now = utcnow()
            inserted = self._insert_ignoring_conflict(
                Message,
                {
                    "conversation_id": conversation_id,
                    "whatsapp_message_id": message.whatsapp_message_id,
                    "direction": message.direction,
                    "from_phone_number": message.from_phone_number,
                    "to_phone_number": message.to_phone_number,
                    "message_type": message.message_type,
                    "content": message.content,
                    "message_text": message.message_text,
                    "is_auto_response": is_auto_response,
                    "needs_manual_review": needs_manual_review,
                    "ai_confidence_score": ai_confidence_score,
                    "ai_processing_error": ai_processing_error,
                    "contact_name": message.contact_name,
                    "timestamp_whatsapp": message.timestamp_whatsapp,
                    "processed_at": now,
                    "created_at": now,
                },
                ["whatsapp_message_id"],
            )
            self.db.commit()
            return self.get_message_by_provider_id(message.whatsapp_message_id), inserted > 0
        except SQLAlchemyError as e:
            self._rollback(
                "insert_message",
                e,
                conversation_id=conversation_id,
                whatsapp_message_id=message.whatsapp_message_id,
            )
            return None, False

    def update_message_by_provider_id(self, whatsapp_message_id: str, **fields: Any) -> bool:
        """Update a stored message; a missing row is a no-op."""
        try:
            updated = (
                self.db.query(Message)
                .filter(Message.whatsapp_message_id == whatsapp_message_id)
                .update(fields, synchronize_session="fetch")
            )
            self.db.commit()
            return updated > 0
        except SQLAlchemyError as e:
            self._rollback("update_message_by_provider_id", e, whatsapp_message_id=whatsapp_message_id)
            return False

    def get_recent_messages(self, conversation_id: int, limit: int = 20) -> list[Message]:
        """Latest messages of a conversation, oldest first."""
        try:
            newest_first = (
                self.db.query(Message)
                .filter(Message.conversation_id == conversation_id)
                .order_by(Message.timestamp_whatsapp.desc(), Message.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as e:
            self._rollback("get_recent_messages", e, conversation_id=conversation_id)
            return []
        return list(reversed(newest_first))

    def list_messages(self, conversation_id: int) -> list[Message]:
        """All messages of a conversation in chronological order."""
        return (
            self.db.query(Message)
            .filter(Message.conversation_id == conversation_id)
            .order_by(Message.timestamp_whatsapp.asc(), Message.id.asc())
            .all()
        )

    # =========================================================================
    # Properties and links
    # =========================================================================

    def _live_link_query(self, user_id: str, account_id: int, customer_phone: str):
        return (
            self.db.query(PropertyLink, Property)
            .join(Property, Property.id == PropertyLink.property_id)
            .filter(
                PropertyLink.user_id == user_id,
                PropertyLink.whatsapp_account_id == account_id,
                PropertyLink.customer_phone_number == customer_phone,
                PropertyLink.unlinked_at.is_(None),
            )
            .order_by(PropertyLink.linked_at.desc(), PropertyLink.id.desc())
        )

    def find_property_link(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> PropertyInfo | None:
        """Live property link for a guest phone, joined with the property."""
        try:
            row = self._live_link_query(user_id, account_id, customer_phone).first()
        except SQLAlchemyError as e:
            self._rollback("find_property_link", e, account_id=account_id, customer_phone=customer_phone)
            return None

        if not row:
            return None

        link, prop = row
        return PropertyInfo(
            property_id=prop.id,
            property_name=prop.name,
            auto_respond_enabled=bool(link.auto_respond_enabled),
            link_id=link.id,
            property_details={name: getattr(prop, name) for name in PROPERTY_DETAIL_FIELDS},
        )

    def is_auto_respond_enabled(
        self,
        user_id: str,
        account_id: int,
        customer_phone: str,
    ) -> bool:
        """True only for a live link with auto-respond on."""
        info = self.find_property_link(user_id, account_id, customer_phone)
        return bool(info and info.auto_respond_enabled)

    def get_property(self, property_id: int) -> Property | None:
        return self.db.get(Property, property_id)

    def create_property(self, user_id: str, name: str, **details: Any) -> Property:
        """Create a property. Caller commits."""
        unknown = set(details) - set(PROPERTY_DETAIL_FIELDS)
        if unknown:
            raise ValueError(f"Unknown property fields: {sorted(unknown)}")

        prop = Property(user_id=user_id, name=name, status="active", **details)
        self.db.add(prop)
        return prop

    def link_property(
        self,
        account: WhatsAppAccount,
        property_id: int,
        customer_phone: str,
        auto_respond_enabled: bool = True,
        created_by_user_id: str | None = None,
    ) -> PropertyLink:
        """
        Link a guest phone to a property, replacing any live link. Caller commits.
        """
        self.unlink_property(account.id, customer_phone)

        link = PropertyLink(
            user_id=account.user_id,
            whatsapp_account_id=account.id,
            property_id=property_id,
            customer_phone_number=customer_phone,
            auto_respond_enabled=auto_respond_enabled,
            created_by_user_id=created_by_user_id or account.user_id,
        )
        self.db.add(link)
        return link

    def unlink_property(self, account_id: int, customer_phone: str) -> int:
        """Soft-delete live links for a guest phone. Returns links closed. Caller commits."""
        links = (
            self.db.query(PropertyLink)
            .filter(
                PropertyLink.whatsapp_account_id == account_id,
                PropertyLink.customer_phone_number == customer_phone,
                PropertyLink.unlinked_at.is_(None),
            )
            .all()
        )
        now = utcnow()
        for link in links:
            link.unlinked_at = now
        return len(links)

    def set_auto_respond(self, account_id: int, customer_phone: str, enabled: bool) -> bool:
        """Toggle auto-respond on the live link. False if no live link. Caller commits."""
        link = (
            self.db.query(PropertyLink)
            .filter(
                PropertyLink.whatsapp_account_id == account_id,
                PropertyLink.customer_phone_number == customer_phone,
                PropertyLink.unlinked_at.is_(None),
            )
            .order_by(PropertyLink.linked_at.desc())
            .first()
        )
        if not link:
            return False
        link.auto_respond_enabled = enabled
        return True
