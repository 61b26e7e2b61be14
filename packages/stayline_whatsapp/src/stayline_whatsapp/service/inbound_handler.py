"""
Inbound Message Handler

Processes a verified webhook delivery:
1. Parses the payload into change variants
2. Resolves the business account per change
3. Normalizes and stores each message in its conversation
4. Drafts a reply, gates it, and either sends it or flags the conversation
5. Applies delivery/read statuses

Messages in a delivery are processed in order, each behind its own error
boundary: one bad message never stops its siblings.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from stayline_whatsapp.contracts.payloads import (
    ChangeVariant,
    MessagesChange,
    TemplateStatusChange,
    UnrecognizedChange,
    WebhookStatus,
)
from stayline_whatsapp.contracts.records import NormalizedMessage, PropertyInfo
from stayline_whatsapp.contracts.results import AIResponseResult, StepResult
from stayline_whatsapp.errors import MessageValidationError
from stayline_whatsapp.persistence.gateway import PersistenceGateway
from stayline_whatsapp.persistence.models import (
    MessageDirection,
    MessageStatus,
    WhatsAppAccount,
)
from stayline_whatsapp.providers.base import MessageType, ProviderError, WhatsAppProvider
from stayline_whatsapp.providers.meta_cloud.webhook import parse_changes
from stayline_whatsapp.routing.account_resolver import AccountResolver
from stayline_whatsapp.routing.conversation import ConversationResolver
from stayline_whatsapp.service.normalizer import normalize_message
from stayline_whatsapp.service.reply_generator import ReplyGenerator
from stayline_whatsapp.streams.activity import ActivityEvent, ActivitySink, LoggingActivitySink

logger = logging.getLogger(__name__)

# Intervention reasons shown to operators
REASON_NO_PROPERTY = "No property linked"
REASON_AUTO_RESPONSE_DISABLED = "Auto-response disabled"
REASON_AI_FAILED = "AI processing failed"
REASON_SEND_FAILED = "AI response generation succeeded but sending failed"

DEFAULT_AUTO_SEND_THRESHOLD = 0.95


def low_confidence_reason(confidence: float, reasoning: str) -> str:
    return f"Low AI confidence ({round(confidence * 100)}%): {reasoning}"


class ProcessingState(str, Enum):
    """Per-message pipeline states. ERRORED is reachable from any step."""

    RECEIVED = "received"
    NORMALIZED = "normalized"
    CONVERSATION_RESOLVED = "conversation_resolved"
    PERSISTED = "persisted"
    AI_DRAFTED = "ai_drafted"
    GATED = "gated"
    SENT = "sent"
    HELD = "held"
    DONE = "done"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    ERRORED = "errored"


@dataclass
class MessageOutcome:
    """Where one message ended up."""

    whatsapp_message_id: str | None
    state: ProcessingState = ProcessingState.RECEIVED
    conversation_id: int | None = None
    needs_manual_review: bool = False
    intervention_reason: str | None = None
    reply_message_id: str | None = None
    error: str | None = None
    history: list[ProcessingState] = field(default_factory=list)

    def advance(self, state: ProcessingState) -> None:
        self.history.append(self.state)
        self.state = state

    def fail(self, error: str, state: ProcessingState = ProcessingState.ERRORED) -> "MessageOutcome":
        self.error = error
        self.advance(state)
        return self


@dataclass
class WebhookResult:
    """Summary of one webhook delivery."""

    outcomes: list[MessageOutcome] = field(default_factory=list)
    statuses_applied: int = 0
    statuses_unmatched: int = 0
    changes_ignored: int = 0
    accounts_missing: int = 0

    def count(self, state: ProcessingState) -> int:
        return sum(1 for outcome in self.outcomes if outcome.state == state)

    def to_dict(self) -> dict[str, Any]:
        states: dict[str, int] = {}
        for outcome in self.outcomes:
            states[outcome.state.value] = states.get(outcome.state.value, 0) + 1
        return {
            "messages": states,
            "statuses_applied": self.statuses_applied,
            "statuses_unmatched": self.statuses_unmatched,
            "changes_ignored": self.changes_ignored,
            "accounts_missing": self.accounts_missing,
        }


@dataclass
class _MessageContext:
    account: WhatsAppAccount
    change: MessagesChange
    message: NormalizedMessage
    conversation_id: int
    property_info: PropertyInfo | None = None

    @property
    def business_phone(self) -> str:
        return self.change.metadata.display_phone_number or self.account.display_phone_number


class ResponseOrchestrator:
    """
    Runs the inbound pipeline for webhook deliveries.

    Collaborators are injected; nothing is shared between deliveries
    except the gateway's storage.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        provider: WhatsAppProvider,
        reply_generator: ReplyGenerator,
        activity: ActivitySink | None = None,
        encryption_key: str | None = None,
        auto_send_threshold: float = DEFAULT_AUTO_SEND_THRESHOLD,
        send_timeout: float = 15.0,
    ):
        self.gateway = gateway
        self.provider = provider
        self.replies = reply_generator
        self.activity = activity or LoggingActivitySink()
        self.accounts = AccountResolver(gateway, encryption_key=encryption_key)
        self.conversations = ConversationResolver(gateway)
        self.auto_send_threshold = auto_send_threshold
        self.send_timeout = send_timeout

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_payload(self, payload: dict[str, Any]) -> WebhookResult:
        """Process every entry/change pair of a webhook delivery, in order."""
        result = WebhookResult()

        for change in parse_changes(payload):
            await self.handle_change(change, result)

        logger.info("Webhook delivery processed", extra=result.to_dict())
        return result

    async def handle_change(self, change: ChangeVariant, result: WebhookResult) -> None:
        if isinstance(change, MessagesChange):
            await self._handle_messages_change(change, result)
        elif isinstance(change, TemplateStatusChange):
            result.changes_ignored += 1
            logger.info("Template status update received", extra={"waba_id": change.waba_id})
            self.activity.emit(
                ActivityEvent.CHANGE_IGNORED,
                waba_id=change.waba_id,
                field="message_template_status_update",
            )
        elif isinstance(change, UnrecognizedChange):
            result.changes_ignored += 1
            logger.info(
                f"Ignoring webhook change: field={change.field!r} reason={change.reason}",
                extra={"waba_id": change.waba_id},
            )
            self.activity.emit(
                ActivityEvent.CHANGE_IGNORED,
                waba_id=change.waba_id,
                field=change.field,
                reason=change.reason,
            )
        else:
            raise TypeError(f"Unhandled change variant: {type(change).__name__}")

    async def _handle_messages_change(self, change: MessagesChange, result: WebhookResult) -> None:
        if change.messages:
            account = self.accounts.resolve(change.metadata.phone_number_id)
            if account is None:
                result.accounts_missing += 1
                self.activity.emit(
                    ActivityEvent.ACCOUNT_MISSING,
                    phone_number_id=change.metadata.phone_number_id,
                    skipped_messages=len(change.messages),
                )
            else:
                for raw in change.messages:
                    result.outcomes.append(await self.process_message(account, change, raw))

        for status in change.statuses:
            if self.apply_status(status):
                result.statuses_applied += 1
            else:
                result.statuses_unmatched += 1

    # =========================================================================
    # Messages
    # =========================================================================

    async def process_message(
        self,
        account: WhatsAppAccount,
        change: MessagesChange,
        raw: dict[str, Any],
    ) -> MessageOutcome:
        """Run one message through the pipeline. Never raises."""
        outcome = MessageOutcome(whatsapp_message_id=raw.get("id") if isinstance(raw, dict) else None)

        try:
            await self._run_pipeline(account, change, raw, outcome)
        except Exception as e:
            logger.exception(
                "Unexpected error processing message",
                extra={"whatsapp_message_id": outcome.whatsapp_message_id},
            )
            outcome.fail(f"Unexpected error: {e}")

        if outcome.state == ProcessingState.ERRORED:
            self.activity.emit(
                ActivityEvent.MESSAGE_FAILED,
                whatsapp_message_id=outcome.whatsapp_message_id,
                error=outcome.error,
                last_state=outcome.history[-1].value if outcome.history else None,
            )
        elif outcome.state == ProcessingState.DUPLICATE:
            self.activity.emit(
                ActivityEvent.MESSAGE_DUPLICATE,
                whatsapp_message_id=outcome.whatsapp_message_id,
            )
        elif outcome.state == ProcessingState.DONE:
            self.activity.emit(
                ActivityEvent.MESSAGE_PROCESSED,
                whatsapp_message_id=outcome.whatsapp_message_id,
                conversation_id=outcome.conversation_id,
                needs_manual_review=outcome.needs_manual_review,
                intervention_reason=outcome.intervention_reason,
            )

        return outcome

    async def _run_pipeline(
        self,
        account: WhatsAppAccount,
        change: MessagesChange,
        raw: dict[str, Any],
        outcome: MessageOutcome,
    ) -> None:
        normalized = self._normalize(raw, change)
        if not normalized.ok:
            outcome.fail(normalized.error)
            return
        message = normalized.value
        outcome.advance(ProcessingState.NORMALIZED)

        if self.gateway.is_message_processed(message.whatsapp_message_id):
            logger.debug(f"Message {message.whatsapp_message_id} already processed, skipping")
            outcome.advance(ProcessingState.DUPLICATE)
            return

        resolved = self._resolve_conversation(account, change, message)
        if not resolved.ok:
            outcome.fail(resolved.error, ProcessingState.SKIPPED)
            return
        ctx = resolved.value
        outcome.conversation_id = ctx.conversation_id
        outcome.advance(ProcessingState.CONVERSATION_RESOLVED)

        ctx.property_info = self.conversations.property_for(
            account.user_id, account.id, message.from_phone_number
        )
        auto_respond = self.conversations.auto_respond_enabled(
            account.user_id, account.id, message.from_phone_number
        )
        review_reason = None
        if ctx.property_info is None:
            review_reason = REASON_NO_PROPERTY
        elif not auto_respond:
            review_reason = REASON_AUTO_RESPONSE_DISABLED
        needs_review = review_reason is not None

        stored = self._persist_inbound(ctx, needs_review, review_reason)
        if stored.error_code == "duplicate":
            logger.info(f"Message {message.whatsapp_message_id} stored concurrently, skipping")
            outcome.advance(ProcessingState.DUPLICATE)
            return
        if not stored.ok:
            outcome.fail(stored.error)
            return
        outcome.advance(ProcessingState.PERSISTED)
        outcome.needs_manual_review = needs_review

        self.gateway.update_conversation_metadata(
            ctx.conversation_id,
            MessageDirection.INBOUND,
            message.timestamp_whatsapp,
            needs_manual_review=needs_review,
        )
        if ctx.property_info is not None:
            self.gateway.attach_property_link(ctx.conversation_id, ctx.property_info.link_id)

        if needs_review:
            self._flag(ctx, outcome, review_reason)
            outcome.advance(ProcessingState.DONE)
            return

        if message.message_type != MessageType.TEXT.value or not (message.message_text or "").strip():
            outcome.advance(ProcessingState.DONE)
            return

        await self._auto_respond(ctx, outcome)
        outcome.advance(ProcessingState.DONE)

    def _normalize(self, raw: Any, change: MessagesChange) -> StepResult[NormalizedMessage]:
        if not isinstance(raw, dict):
            return StepResult.failure("Message entry is not an object", code="invalid_message")
        try:
            return StepResult.success(normalize_message(raw, change.metadata, change.contacts))
        except MessageValidationError as e:
            logger.warning(
                f"Message failed normalization: {e}",
                extra={"whatsapp_message_id": raw.get("id")},
            )
            return StepResult.failure(str(e), code=e.code or "invalid_message")

    def _resolve_conversation(
        self,
        account: WhatsAppAccount,
        change: MessagesChange,
        message: NormalizedMessage,
    ) -> StepResult[_MessageContext]:
        business_phone = change.metadata.display_phone_number or account.display_phone_number
        conversation_id = self.conversations.resolve(
            account.user_id,
            account.id,
            message.from_phone_number,
            business_phone,
        )
        if conversation_id is None:
            return StepResult.failure("Conversation could not be resolved", code="conversation_unresolved")
        return StepResult.success(
            _MessageContext(
                account=account,
                change=change,
                message=message,
                conversation_id=conversation_id,
            )
        )

    def _persist_inbound(
        self,
        ctx: _MessageContext,
        needs_review: bool,
        review_reason: str | None,
    ) -> StepResult[int]:
        stored, created = self.gateway.insert_message(
            ctx.conversation_id,
            ctx.message,
            is_auto_response=False,
            needs_manual_review=needs_review,
            ai_processing_error=review_reason,
        )
        if stored is None:
            return StepResult.failure("Inbound message could not be stored", code="persistence_failed")
        if not created:
            return StepResult.failure("Message stored by a concurrent delivery", code="duplicate")
        return StepResult.success(stored.id)

    def _flag(self, ctx: _MessageContext, outcome: MessageOutcome, reason: str) -> None:
        outcome.needs_manual_review = True
        outcome.intervention_reason = reason
        self.gateway.flag_conversation_for_intervention(ctx.conversation_id, reason)

    # =========================================================================
    # Auto-response
    # =========================================================================

    async def _auto_respond(self, ctx: _MessageContext, outcome: MessageOutcome) -> None:
        message = ctx.message
        reply = await self.replies.generate(
            ctx.conversation_id,
            message.message_text,
            ctx.property_info,
            exclude_message_id=message.whatsapp_message_id,
        )

        if reply.error:
            self.gateway.update_message_by_provider_id(
                message.whatsapp_message_id,
                ai_processing_error=reply.error,
                needs_manual_review=True,
            )
            self._flag(ctx, outcome, REASON_AI_FAILED)
            outcome.error = reply.error
            return
        outcome.advance(ProcessingState.AI_DRAFTED)
        outcome.advance(ProcessingState.GATED)

        if not (reply.should_send and reply.confidence >= self.auto_send_threshold):
            self._hold(ctx, outcome, reply)
            return

        sent = await self._send_reply(ctx, reply)
        if not sent.ok:
            self.gateway.update_message_by_provider_id(
                message.whatsapp_message_id,
                ai_processing_error=sent.error,
                needs_manual_review=True,
                ai_confidence_score=reply.confidence,
                ai_draft_response=reply.response,
                ai_reasoning=reply.reasoning,
            )
            self._flag(ctx, outcome, REASON_SEND_FAILED)
            outcome.error = sent.error
            outcome.advance(ProcessingState.HELD)
            self.activity.emit(
                ActivityEvent.REPLY_HELD,
                conversation_id=ctx.conversation_id,
                whatsapp_message_id=message.whatsapp_message_id,
                reason=REASON_SEND_FAILED,
            )
            return

        self._record_sent_reply(ctx, reply, sent.value)
        outcome.reply_message_id = sent.value
        outcome.advance(ProcessingState.SENT)
        self.activity.emit(
            ActivityEvent.REPLY_SENT,
            conversation_id=ctx.conversation_id,
            whatsapp_message_id=sent.value,
            in_reply_to=message.whatsapp_message_id,
            confidence=reply.confidence,
        )

    def _hold(self, ctx: _MessageContext, outcome: MessageOutcome, reply: AIResponseResult) -> None:
        reason = low_confidence_reason(reply.confidence, reply.reasoning)
        self.gateway.update_message_by_provider_id(
            ctx.message.whatsapp_message_id,
            ai_confidence_score=reply.confidence,
            ai_reasoning=reply.reasoning,
            ai_draft_response=reply.response,
            needs_manual_review=True,
        )
        self._flag(ctx, outcome, reason)
        outcome.advance(ProcessingState.HELD)
        self.activity.emit(
            ActivityEvent.REPLY_HELD,
            conversation_id=ctx.conversation_id,
            whatsapp_message_id=ctx.message.whatsapp_message_id,
            confidence=reply.confidence,
            reason=reason,
        )

    async def _send_reply(self, ctx: _MessageContext, reply: AIResponseResult) -> StepResult[str]:
        access_token = self.accounts.get_access_token(ctx.account)
        if not access_token:
            return StepResult.failure("Failed to send AI response: no access token", code="no_access_token")

        try:
            response = await asyncio.wait_for(
                self.provider.send_text(
                    phone_number_id=ctx.account.phone_number_id,
                    access_token=access_token,
                    to=ctx.message.from_phone_number,
                    text=reply.response,
                ),
                timeout=self.send_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Outbound send timed out after {self.send_timeout}s",
                extra={"conversation_id": ctx.conversation_id},
            )
            return StepResult.failure(
                f"Failed to send AI response: timed out after {self.send_timeout:g}s",
                code="send_timeout",
            )
        except ProviderError as e:
            logger.error(
                f"Outbound send failed: {e}",
                extra={"conversation_id": ctx.conversation_id, "code": e.code},
            )
            return StepResult.failure(f"Failed to send AI response: {e}", code=e.code or "provider_error")
        except Exception as e:
            logger.exception(
                "Unexpected error sending AI response",
                extra={"conversation_id": ctx.conversation_id},
            )
            return StepResult.failure(f"Failed to send AI response: {e}", code="send_failed")

        return StepResult.success(response.message_id)

    def _record_sent_reply(self, ctx: _MessageContext, reply: AIResponseResult, provider_message_id: str) -> None:
        now = datetime.now(timezone.utc)
        outbound = NormalizedMessage(
            whatsapp_message_id=provider_message_id,
            direction=MessageDirection.OUTBOUND.value,
            from_phone_number=ctx.business_phone,
            to_phone_number=ctx.message.from_phone_number,
            message_type=MessageType.TEXT.value,
            timestamp_whatsapp=now,
            content={"type": "text", "text": {"body": reply.response}},
            message_text=reply.response,
        )
        stored, _ = self.gateway.insert_message(
            ctx.conversation_id,
            outbound,
            is_auto_response=True,
            needs_manual_review=False,
            ai_confidence_score=reply.confidence,
        )
        if stored is None:
            # The guest already has the reply; only our record of it is missing
            logger.error(
                "Auto-reply sent but could not be stored",
                extra={"conversation_id": ctx.conversation_id, "whatsapp_message_id": provider_message_id},
            )

        self.gateway.update_message_by_provider_id(
            ctx.message.whatsapp_message_id,
            ai_confidence_score=reply.confidence,
            ai_reasoning=reply.reasoning,
        )
        self.gateway.update_conversation_metadata(
            ctx.conversation_id,
            MessageDirection.OUTBOUND,
            now,
            needs_manual_review=False,
        )

    # =========================================================================
    # Statuses
    # =========================================================================

    def apply_status(self, status: WebhookStatus) -> bool:
        """
        Record a delivery/read receipt on the stored message.

        An unknown provider id or status value is a no-op, not an error.
        """
        try:
            new_status = MessageStatus(status.status)
        except ValueError:
            logger.info(f"Ignoring unsupported message status: {status.status!r}")
            return False

        fields: dict[str, Any] = {"status": new_status.value}
        if new_status == MessageStatus.FAILED and status.error_message:
            fields["error_message"] = status.error_message

        try:
            updated = self.gateway.update_message_by_provider_id(status.id, **fields)
        except Exception:
            logger.exception("Unexpected error applying status", extra={"whatsapp_message_id": status.id})
            return False

        if updated:
            self.activity.emit(
                ActivityEvent.STATUS_UPDATED,
                whatsapp_message_id=status.id,
                status=new_status.value,
            )
        else:
            logger.debug(f"Status for unknown message {status.id}, ignoring")
        return updated
