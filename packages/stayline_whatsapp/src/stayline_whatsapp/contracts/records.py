"""
Internal Records

Shapes passed between the normalizer, the resolvers and the gateway.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class NormalizedMessage:
    """A provider message mapped onto the stored message shape."""

    whatsapp_message_id: str
    direction: str
    from_phone_number: str
    to_phone_number: str
    message_type: str
    timestamp_whatsapp: datetime
    content: dict[str, Any] = field(default_factory=dict)
    message_text: str | None = None
    contact_name: str | None = None


@dataclass
class PropertyInfo:
    """A live property link joined with its property record."""

    property_id: int
    property_name: str
    auto_respond_enabled: bool
    link_id: int | None = None
    property_details: dict[str, Any] = field(default_factory=dict)
