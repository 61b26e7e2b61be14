"""
Stub WhatsApp Provider

Development provider that logs all operations without making real API calls.
Useful for local development and testing.
"""

import logging
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from stayline_whatsapp.providers.base import (
    ProviderError,
    ProviderResponse,
    WhatsAppProvider,
)

logger = logging.getLogger(__name__)


class StubWhatsAppProvider(WhatsAppProvider):
    """
    Stub provider for development and testing.

    - Logs and records all outbound messages
    - Generates fake message IDs
    - Can be told to fail every send
    """

    def __init__(self, fail_with: ProviderError | None = None):
        self.fail_with = fail_with
        self.sent_messages: list[dict[str, Any]] = []

    async def send_text(
        self,
        phone_number_id: str,
        access_token: str,
        to: str,
        text: str,
        reply_to: str | None = None,
        preview_url: bool = False,
    ) -> ProviderResponse:
        """Log and return success for text message."""
        if self.fail_with is not None:
            logger.info("[STUB] Simulating send failure", extra={"to": to})
            raise self.fail_with

        message_id = f"stub_msg_{uuid4().hex[:16]}"

        self.sent_messages.append({
            "type": "text",
            "phone_number_id": phone_number_id,
            "to": to,
            "text": text,
            "reply_to": reply_to,
            "message_id": message_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })

        logger.info(
            "[STUB] Sending text message",
            extra={
                "to": to,
                "text": text[:100] + "..." if len(text) > 100 else text,
                "message_id": message_id,
            },
        )

        return ProviderResponse(
            message_id=message_id,
            raw_response={"stub": True, "message_id": message_id},
        )
