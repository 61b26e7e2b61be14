"""
Reply Generator

Loads conversation history, asks the drafter for a reply under a timeout
and runs the confidence gate over it.
"""

import asyncio
import logging

from stayline_whatsapp.contracts.records import PropertyInfo
from stayline_whatsapp.contracts.results import AIResponseResult
from stayline_whatsapp.llm.base import TextDrafter
from stayline_whatsapp.persistence.gateway import PersistenceGateway
from stayline_whatsapp.persistence.models import Message, MessageDirection
from stayline_whatsapp.service.confidence import ConfidenceGate
from stayline_whatsapp.service.property_context import format_property_context

logger = logging.getLogger(__name__)


def history_turns(messages: list[Message]) -> list[dict[str, str]]:
    """Stored messages as chat turns: guest is ``user``, host is ``assistant``."""
    return [
        {
            "role": "user" if message.direction == MessageDirection.INBOUND.value else "assistant",
            "content": message.message_text or f"[{message.message_type} message]",
        }
        for message in messages
    ]


class ReplyGenerator:
    """Produces an AIResponseResult for one guest message."""

    def __init__(
        self,
        gateway: PersistenceGateway,
        drafter: TextDrafter,
        gate: ConfidenceGate | None = None,
        history_limit: int = 20,
        timeout: float = 30.0,
    ):
        self.gateway = gateway
        self.drafter = drafter
        self.gate = gate or ConfidenceGate()
        self.history_limit = history_limit
        self.timeout = timeout

    async def generate(
        self,
        conversation_id: int,
        message_text: str,
        property_info: PropertyInfo | None,
        exclude_message_id: str | None = None,
    ) -> AIResponseResult:
        """
        Draft and gate a reply. Never raises: drafting failures come back
        as ``AIResponseResult.failed``.

        ``exclude_message_id`` drops the message being answered from the
        history, since it is already stored when the orchestrator calls in.
        """
        history = [
            message
            for message in self.gateway.get_recent_messages(conversation_id, limit=self.history_limit)
            if message.whatsapp_message_id != exclude_message_id
        ]

        try:
            draft = await asyncio.wait_for(
                self.drafter.draft(
                    history_turns(history),
                    format_property_context(property_info),
                    message_text,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Reply drafting timed out after {self.timeout}s",
                extra={"conversation_id": conversation_id},
            )
            return AIResponseResult.failed(f"AI drafting timed out after {self.timeout:g}s")
        except Exception as e:
            logger.exception(
                "Reply drafting failed",
                extra={"conversation_id": conversation_id},
            )
            return AIResponseResult.failed(str(e) or type(e).__name__)

        decision = self.gate.classify(draft, message_text)

        logger.info(
            "Reply drafted",
            extra={
                "conversation_id": conversation_id,
                "confidence": decision.confidence,
                "should_send": decision.should_send,
            },
        )

        return AIResponseResult(
            response=draft,
            confidence=decision.confidence,
            should_send=decision.should_send,
            reasoning=decision.reasoning,
        )
