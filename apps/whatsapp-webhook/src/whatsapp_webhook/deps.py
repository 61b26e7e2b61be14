"""
Dependency wiring for the webhook service.

Long-lived collaborators (provider, drafter, activity sink) are built once
per process; repositories and orchestrators are built per request around
the request's database session. Tests swap any of them through
``app.dependency_overrides``.
"""

import functools

from fastapi import Depends
from sqlalchemy.orm import Session

from stayline_core.db import get_db
from stayline_core.redis import get_redis_client
from stayline_core.settings import Settings, get_settings

from stayline_whatsapp.llm.base import TextDrafter
from stayline_whatsapp.llm.chat_completions import ChatCompletionsDrafter
from stayline_whatsapp.persistence.repo import WhatsAppRepository
from stayline_whatsapp.providers.base import WhatsAppProvider
from stayline_whatsapp.service.inbound_handler import ResponseOrchestrator
from stayline_whatsapp.service.outbound_handler import OutboundHandler, get_provider
from stayline_whatsapp.service.reply_generator import ReplyGenerator
from stayline_whatsapp.streams.activity import ActivitySink, build_activity_sink


@functools.lru_cache()
def get_whatsapp_provider() -> WhatsAppProvider:
    settings = get_settings()
    return get_provider(
        settings.WHATSAPP_PROVIDER,
        api_version=settings.GRAPH_API_VERSION,
        timeout=settings.SEND_TIMEOUT_SECONDS,
    )


@functools.lru_cache()
def get_drafter() -> TextDrafter:
    return ChatCompletionsDrafter.from_settings(get_settings())


@functools.lru_cache()
def get_activity_sink() -> ActivitySink:
    settings = get_settings()
    return build_activity_sink(
        settings.ACTIVITY_SINK,
        redis_client=get_redis_client() if settings.ACTIVITY_SINK == "redis" else None,
        stream_name=settings.ACTIVITY_STREAM,
        max_len=settings.ACTIVITY_MAXLEN,
    )


def get_repository(db: Session = Depends(get_db)) -> WhatsAppRepository:
    return WhatsAppRepository(db)


def get_reply_generator(
    repo: WhatsAppRepository = Depends(get_repository),
    drafter: TextDrafter = Depends(get_drafter),
    settings: Settings = Depends(get_settings),
) -> ReplyGenerator:
    return ReplyGenerator(
        repo,
        drafter,
        history_limit=settings.HISTORY_LIMIT,
        timeout=settings.AI_DRAFT_TIMEOUT_SECONDS,
    )


def get_orchestrator(
    repo: WhatsAppRepository = Depends(get_repository),
    provider: WhatsAppProvider = Depends(get_whatsapp_provider),
    replies: ReplyGenerator = Depends(get_reply_generator),
    activity: ActivitySink = Depends(get_activity_sink),
    settings: Settings = Depends(get_settings),
) -> ResponseOrchestrator:
    return ResponseOrchestrator(
        gateway=repo,
        provider=provider,
        reply_generator=replies,
        activity=activity,
        encryption_key=settings.WHATSAPP_ENCRYPTION_KEY or None,
        auto_send_threshold=settings.AUTO_SEND_CONFIDENCE_THRESHOLD,
        send_timeout=settings.SEND_TIMEOUT_SECONDS,
    )


def get_outbound_handler(
    repo: WhatsAppRepository = Depends(get_repository),
    provider: WhatsAppProvider = Depends(get_whatsapp_provider),
    settings: Settings = Depends(get_settings),
) -> OutboundHandler:
    return OutboundHandler(
        repo,
        provider,
        encryption_key=settings.WHATSAPP_ENCRYPTION_KEY or None,
    )
