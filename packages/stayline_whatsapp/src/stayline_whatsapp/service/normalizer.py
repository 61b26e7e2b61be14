"""
Message Normalizer

Maps one raw ``value.messages[]`` object onto the stored message shape.
"""

from datetime import datetime, timezone
from typing import Any

from stayline_whatsapp.contracts.payloads import WebhookContact, WebhookMetadata
from stayline_whatsapp.contracts.records import NormalizedMessage
from stayline_whatsapp.errors import MessageValidationError
from stayline_whatsapp.persistence.models import MessageDirection
from stayline_whatsapp.providers.base import MessageType


def parse_provider_timestamp(value: Any) -> datetime:
    """Unix epoch seconds (string or int) to an aware UTC datetime."""
    try:
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    except (TypeError, ValueError, OverflowError, OSError) as e:
        raise MessageValidationError(
            f"Invalid message timestamp: {value!r}",
            code="invalid_timestamp",
        ) from e


def _contact_name(contacts: list[WebhookContact], sender: str) -> str | None:
    for contact in contacts:
        if contact.wa_id == sender:
            return contact.profile.name
    return None


def normalize_message(
    raw: dict[str, Any],
    metadata: WebhookMetadata,
    contacts: list[WebhookContact],
) -> NormalizedMessage:
    """
    Normalize a provider message.

    Raises:
        MessageValidationError: missing id/sender or malformed timestamp
    """
    message_id = raw.get("id")
    sender = raw.get("from")
    if not message_id or not sender:
        raise MessageValidationError(
            "Message is missing id or sender",
            code="missing_field",
            details={"id": message_id, "from": sender},
        )

    message_type = raw.get("type") or MessageType.UNKNOWN.value

    text = None
    if message_type == MessageType.TEXT.value:
        text = (raw.get("text") or {}).get("body")

    return NormalizedMessage(
        whatsapp_message_id=message_id,
        direction=MessageDirection.INBOUND.value,
        from_phone_number=sender,
        to_phone_number=metadata.phone_number_id,
        message_type=message_type,
        timestamp_whatsapp=parse_provider_timestamp(raw.get("timestamp")),
        content=raw,
        message_text=text,
        contact_name=_contact_name(contacts, sender),
    )
