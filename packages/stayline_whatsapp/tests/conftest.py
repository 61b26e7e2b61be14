"""
Pytest fixtures for Stayline WhatsApp tests.
"""

import asyncio
import hashlib
import hmac
from typing import Any

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stayline_core.db import Base
from stayline_whatsapp.errors import DraftingError
from stayline_whatsapp.llm.base import TextDrafter
from stayline_whatsapp.persistence import models  # noqa: F401
from stayline_whatsapp.persistence.repo import WhatsAppRepository
from stayline_whatsapp.providers.stub import StubWhatsAppProvider
from stayline_whatsapp.service.inbound_handler import ResponseOrchestrator
from stayline_whatsapp.service.reply_generator import ReplyGenerator
from stayline_whatsapp.streams.activity import RecentActivityBuffer

PHONE_NUMBER_ID = "106540352242922"
BUSINESS_NUMBER = "+15550001111"
GUEST_PHONE = "15551234567"


class FakeDrafter(TextDrafter):
    """Drafter returning a canned reply and recording its calls."""

    def __init__(self, reply: str = "Happy to help!", error: Exception | None = None, delay: float = 0):
        self.reply = reply
        self.error = error
        self.delay = delay
        self.calls: list[dict[str, Any]] = []

    async def draft(self, history, property_context, new_message):
        self.calls.append({
            "history": history,
            "property_context": property_context,
            "new_message": new_message,
        })
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.reply


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    session = sessionmaker(bind=engine, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return WhatsAppRepository(db_session)


@pytest.fixture
def account(repo, db_session):
    account = repo.create_account(
        user_id="host-1",
        waba_id="waba-1",
        phone_number_id=PHONE_NUMBER_ID,
        display_phone_number=BUSINESS_NUMBER,
        access_token="plain-token",
    )
    db_session.commit()
    return account


@pytest.fixture
def link_guest(repo, db_session, account):
    """Create a property and link a guest phone to it."""

    def _link(customer_phone: str = GUEST_PHONE, auto_respond: bool = True, **details):
        details.setdefault("wifi_password", "Welcome2024!")
        details.setdefault("checkin_time", "3:00 PM")
        prop = repo.create_property(account.user_id, "Sunny Downtown Loft", **details)
        db_session.flush()
        link = repo.link_property(account, prop.id, customer_phone, auto_respond_enabled=auto_respond)
        db_session.commit()
        return link

    return _link


@pytest.fixture
def make_drafter():
    return FakeDrafter


@pytest.fixture
def drafter():
    return FakeDrafter(reply="The WiFi password is Welcome2024!")


@pytest.fixture
def provider():
    return StubWhatsAppProvider()


@pytest.fixture
def activity():
    return RecentActivityBuffer(maxlen=100)


@pytest.fixture
def make_orchestrator(repo, activity, account):
    def _make(drafter: TextDrafter, provider, draft_timeout: float = 5.0, send_timeout: float = 5.0):
        replies = ReplyGenerator(repo, drafter, history_limit=20, timeout=draft_timeout)
        return ResponseOrchestrator(
            gateway=repo,
            provider=provider,
            reply_generator=replies,
            activity=activity,
            send_timeout=send_timeout,
        )

    return _make


@pytest.fixture
def orchestrator(make_orchestrator, drafter, provider):
    return make_orchestrator(drafter, provider)


@pytest.fixture
def text_message():
    def _message(message_id: str, body: str, sender: str = GUEST_PHONE, timestamp: str = "1700000000"):
        return {
            "from": sender,
            "id": message_id,
            "timestamp": timestamp,
            "type": "text",
            "text": {"body": body},
        }

    return _message


@pytest.fixture
def webhook_payload():
    """Build a Meta webhook body with one messages change."""

    def _payload(
        messages: list[dict] | None = None,
        statuses: list[dict] | None = None,
        phone_number_id: str = PHONE_NUMBER_ID,
        contacts: list[dict] | None = None,
    ) -> dict[str, Any]:
        value: dict[str, Any] = {
            "messaging_product": "whatsapp",
            "metadata": {
                "display_phone_number": BUSINESS_NUMBER,
                "phone_number_id": phone_number_id,
            },
        }
        if messages is not None:
            value["contacts"] = contacts if contacts is not None else [
                {"profile": {"name": "Jane Guest"}, "wa_id": GUEST_PHONE}
            ]
            value["messages"] = messages
        if statuses is not None:
            value["statuses"] = statuses
        return {
            "object": "whatsapp_business_account",
            "entry": [{"id": "waba-1", "changes": [{"field": "messages", "value": value}]}],
        }

    return _payload


@pytest.fixture
def sign():
    def _sign(body: bytes, secret: str) -> str:
        return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    return _sign


@pytest.fixture
def drafting_error():
    return DraftingError("LLM API error: 503", code="503")
