"""
Meta Webhook Utilities

Helper functions for processing Meta Cloud API webhooks: signature
validation, the subscription handshake, and parsing each
``entry[].changes[]`` item into a change variant.
"""

import hashlib
import hmac
import logging
from typing import Any

from pydantic import ValidationError

from stayline_whatsapp.contracts.payloads import (
    ChangeField,
    ChangeVariant,
    MessagesChange,
    MessagesValue,
    TemplateStatusChange,
    UnrecognizedChange,
    WebhookPayload,
)

logger = logging.getLogger(__name__)

SUBSCRIBE_MODE = "subscribe"
SIGNATURE_PREFIX = "sha256="
WHATSAPP_OBJECT = "whatsapp_business_account"


def validate_signature(
    payload: bytes,
    signature_header: str | None,
    app_secret: str | None,
) -> bool:
    """
    Validate Meta webhook signature.

    Args:
        payload: Raw request body bytes, exactly as received
        signature_header: X-Hub-Signature-256 header value
        app_secret: Facebook App Secret

    Returns:
        True if signature is valid
    """
    if not signature_header:
        logger.warning("Missing signature header")
        return False

    if not app_secret:
        logger.warning("App secret not configured, rejecting webhook")
        return False

    try:
        computed = SIGNATURE_PREFIX + hmac.new(
            app_secret.encode("utf-8"),
            payload,
            hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(
            computed.encode("utf-8"),
            signature_header.encode("utf-8"),
        )
    except Exception as e:
        logger.warning(f"Signature comparison failed: {e}")
        return False


def verify_webhook_challenge(
    mode: str | None,
    token: str | None,
    challenge: str | None,
    verify_token: str | None,
) -> str | None:
    """Handle Meta webhook verification challenge."""
    if verify_token and mode == SUBSCRIBE_MODE and token == verify_token:
        logger.info("Webhook verification successful")
        return challenge or ""

    logger.warning(f"Webhook verification failed: mode={mode}, token mismatch")
    return None


def parse_changes(payload: dict[str, Any]) -> list[ChangeVariant]:
    """
    Parse a webhook payload into one variant per change, in payload order.

    Non-WhatsApp objects yield no changes. A messages change whose value
    does not validate becomes an UnrecognizedChange rather than an error.
    """
    try:
        webhook = WebhookPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning(f"Webhook payload failed validation: {e}")
        return []

    if webhook.object != WHATSAPP_OBJECT:
        logger.info(f"Ignoring webhook for object: {webhook.object!r}")
        return []

    changes: list[ChangeVariant] = []
    for entry in webhook.entry:
        for change in entry.changes:
            changes.append(_parse_change(entry.id, change.field, change.value))
    return changes


def _parse_change(waba_id: str, field: str, value: dict[str, Any]) -> ChangeVariant:
    if field == ChangeField.MESSAGES.value:
        try:
            parsed = MessagesValue.model_validate(value)
        except ValidationError as e:
            logger.warning(
                f"Messages change failed validation: {e}",
                extra={"waba_id": waba_id},
            )
            return UnrecognizedChange(waba_id=waba_id, field=field, value=value, reason="invalid_value")

        return MessagesChange(
            waba_id=waba_id,
            metadata=parsed.metadata,
            contacts=parsed.contacts,
            messages=parsed.messages,
            statuses=parsed.statuses,
        )

    if field == ChangeField.TEMPLATE_STATUS.value:
        return TemplateStatusChange(waba_id=waba_id, value=value)

    return UnrecognizedChange(waba_id=waba_id, field=field, value=value)
