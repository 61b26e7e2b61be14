"""
Stayline Database Models

Tables used by the inbound pipeline.

Tables:
- whatsapp_business_accounts: Business numbers that receive guest messages
- properties: Rental properties whose details feed reply drafting
- phone_number_property_links: Binds a guest phone to a property (auto-respond switch)
- conversations: One thread per (account, guest phone)
- messages: Every inbound and outbound WhatsApp message

Column types are portable (JSON becomes JSONB on PostgreSQL) so the same
models run against SQLite in development and tests.
"""

from datetime import datetime, timezone
from enum import Enum

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB

from stayline_core.db import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountStatus(str, Enum):
    """Status of a WhatsApp Business account."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class ConversationStatus(str, Enum):
    """Status of a conversation."""

    ACTIVE = "active"
    ARCHIVED = "archived"
    BLOCKED = "blocked"


class MessageDirection(str, Enum):
    """Direction of a WhatsApp message."""

    INBOUND = "inbound"
    OUTBOUND = "outbound"


class MessageStatus(str, Enum):
    """Delivery status of a WhatsApp message."""

    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class TimestampMixin:
    """Common audit columns."""

    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class WhatsAppAccount(Base, TimestampMixin):
    """
    A business phone number registered with the Meta Cloud API.

    Incoming webhooks are routed by phone_number_id.
    """

    __tablename__ = "whatsapp_business_accounts"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    waba_id = Column(String(100), nullable=False)
    phone_number_id = Column(String(100), nullable=False)
    display_phone_number = Column(String(32), nullable=False)
    business_name = Column(String(255), nullable=True)
    access_token = Column(Text, nullable=True)  # Fernet-encrypted when WHATSAPP_ENCRYPTION_KEY is set
    status = Column(String(20), nullable=False, default=AccountStatus.ACTIVE.value)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("phone_number_id", name="uq_whatsapp_accounts_phone_number_id"),
    )


class Property(Base, TimestampMixin):
    """A rental property. Its details are the drafter's knowledge base."""

    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    address = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    wifi_password = Column(String(255), nullable=True)
    checkin_time = Column(String(32), nullable=True)
    checkout_time = Column(String(32), nullable=True)
    house_rules = Column(Text, nullable=True)
    emergency_contact = Column(Text, nullable=True)
    custom_instructions = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="active")


class PropertyLink(Base, TimestampMixin):
    """
    Binds a guest phone number (under one account) to a property.

    Soft-deleted by setting unlinked_at; only links with unlinked_at NULL are live.
    """

    __tablename__ = "phone_number_property_links"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    whatsapp_account_id = Column(Integer, ForeignKey("whatsapp_business_accounts.id"), nullable=False)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False)
    customer_phone_number = Column(String(32), nullable=False)
    auto_respond_enabled = Column(Boolean, nullable=False, default=True)
    linked_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    unlinked_at = Column(DateTime(timezone=True), nullable=True)
    created_by_user_id = Column(String(64), nullable=True)

    __table_args__ = (
        Index("idx_property_links_lookup", "whatsapp_account_id", "customer_phone_number"),
    )


class Conversation(Base, TimestampMixin):
    """
    The thread between one business number and one guest number.

    Unique per (whatsapp_account_id, customer_phone_number); find-or-create
    relies on that constraint for atomicity.
    """

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(64), nullable=False)
    whatsapp_account_id = Column(Integer, ForeignKey("whatsapp_business_accounts.id"), nullable=False)
    property_link_id = Column(Integer, ForeignKey("phone_number_property_links.id"), nullable=True)
    customer_phone_number = Column(String(32), nullable=False)
    business_phone_number = Column(String(32), nullable=False)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    last_message_direction = Column(String(10), nullable=True)
    unread_count = Column(Integer, nullable=False, default=0)
    requires_manual_intervention = Column(Boolean, nullable=False, default=False)
    intervention_reason = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default=ConversationStatus.ACTIVE.value)
    metadata_ = Column("metadata", JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint(
            "whatsapp_account_id",
            "customer_phone_number",
            name="uq_conversations_account_customer",
        ),
        Index("idx_conversations_last_message", "last_message_at"),
    )


class Message(Base):
    """
    One inbound or outbound WhatsApp message.

    whatsapp_message_id is the provider id and is unique, which makes
    repeated webhook deliveries idempotent.
    """

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id"), nullable=False, index=True)
    whatsapp_message_id = Column(String(128), nullable=False)
    direction = Column(String(10), nullable=False)
    from_phone_number = Column(String(32), nullable=False)
    to_phone_number = Column(String(32), nullable=False)
    message_type = Column(String(20), nullable=False, default="text")
    content = Column(JSONType, nullable=False, default=dict)  # Raw provider message
    message_text = Column(Text, nullable=True)
    status = Column(String(20), nullable=True)
    error_message = Column(Text, nullable=True)
    is_auto_response = Column(Boolean, nullable=False, default=False)
    needs_manual_review = Column(Boolean, nullable=False, default=False)
    ai_confidence_score = Column(Float, nullable=True)
    ai_processing_error = Column(Text, nullable=True)
    ai_draft_response = Column(Text, nullable=True)
    ai_reasoning = Column(Text, nullable=True)
    contact_name = Column(String(255), nullable=True)
    timestamp_whatsapp = Column(DateTime(timezone=True), nullable=False)
    processed_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("whatsapp_message_id", name="uq_messages_whatsapp_message_id"),
        Index("idx_messages_conversation_timestamp", "conversation_id", "timestamp_whatsapp"),
    )
