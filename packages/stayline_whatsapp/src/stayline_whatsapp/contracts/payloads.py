"""
WhatsApp Payload Models

Pydantic models for the Meta Cloud API webhook payload, plus the tagged
variants a single ``entry[].changes[]`` item is parsed into.

Raw message objects are kept as dicts: they are stored verbatim as the
message content and normalized separately (see service.normalizer).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Union

from pydantic import BaseModel, ConfigDict, Field


class ChangeField(str, Enum):
    """Webhook ``change.field`` values we route on."""

    MESSAGES = "messages"
    TEMPLATE_STATUS = "message_template_status_update"


class WebhookMetadata(BaseModel):
    """Business number the change was delivered to."""

    model_config = ConfigDict(extra="allow")

    display_phone_number: str = ""
    phone_number_id: str = ""


class ContactProfile(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str | None = None


class WebhookContact(BaseModel):
    """Sender contact card (``value.contacts[]``)."""

    model_config = ConfigDict(extra="allow")

    wa_id: str = ""
    profile: ContactProfile = Field(default_factory=ContactProfile)


class StatusError(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: int | str | None = None
    title: str | None = None
    message: str | None = None


class WebhookStatus(BaseModel):
    """Delivery/read receipt (``value.statuses[]``)."""

    model_config = ConfigDict(extra="allow")

    id: str
    status: str
    timestamp: str | None = None
    recipient_id: str | None = None
    errors: list[StatusError] = Field(default_factory=list)

    @property
    def error_message(self) -> str | None:
        if not self.errors:
            return None
        first = self.errors[0]
        return first.message or first.title


class MessagesValue(BaseModel):
    """``change.value`` for ``field == "messages"``."""

    model_config = ConfigDict(extra="allow")

    messaging_product: str | None = None
    metadata: WebhookMetadata = Field(default_factory=WebhookMetadata)
    contacts: list[WebhookContact] = Field(default_factory=list)
    messages: list[dict[str, Any]] = Field(default_factory=list)
    statuses: list[WebhookStatus] = Field(default_factory=list)


class WebhookChange(BaseModel):
    model_config = ConfigDict(extra="allow")

    field: str = ""
    value: dict[str, Any] = Field(default_factory=dict)


class WebhookEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = ""
    changes: list[WebhookChange] = Field(default_factory=list)


class WebhookPayload(BaseModel):
    """Top-level webhook delivery body."""

    model_config = ConfigDict(extra="allow")

    object: str = ""
    entry: list[WebhookEntry] = Field(default_factory=list)


# =============================================================================
# Change variants
# =============================================================================


@dataclass
class MessagesChange:
    """Inbound messages and/or delivery statuses for one business number."""

    waba_id: str
    metadata: WebhookMetadata
    contacts: list[WebhookContact] = field(default_factory=list)
    messages: list[dict[str, Any]] = field(default_factory=list)
    statuses: list[WebhookStatus] = field(default_factory=list)


@dataclass
class TemplateStatusChange:
    """Template approval/rejection notice. Logged, never processed."""

    waba_id: str
    value: dict[str, Any]


@dataclass
class UnrecognizedChange:
    """Any other field, or a messages change whose value failed validation."""

    waba_id: str
    field: str
    value: dict[str, Any]
    reason: str = "unrecognized_field"


ChangeVariant = Union[MessagesChange, TemplateStatusChange, UnrecognizedChange]
