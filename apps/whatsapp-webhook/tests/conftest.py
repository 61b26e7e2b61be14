"""
Pytest fixtures for the webhook service.

The app runs against an in-memory SQLite database, the stub transport and a
canned drafter, all swapped in through ``app.dependency_overrides``.
"""

import hashlib
import hmac
import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from stayline_core.db import Base, get_db
from stayline_core.settings import Settings, get_settings
from stayline_whatsapp.llm.base import TextDrafter
from stayline_whatsapp.persistence import models  # noqa: F401
from stayline_whatsapp.persistence.repo import WhatsAppRepository
from stayline_whatsapp.providers.stub import StubWhatsAppProvider
from stayline_whatsapp.streams.activity import RecentActivityBuffer

from whatsapp_webhook.deps import get_activity_sink, get_drafter, get_whatsapp_provider
from whatsapp_webhook.main import app

APP_SECRET = "test-app-secret"
VERIFY_TOKEN = "verify-me"
PHONE_NUMBER_ID = "106540352242922"
GUEST_PHONE = "15551234567"


class CannedDrafter(TextDrafter):
    def __init__(self, reply: str = "The WiFi password is Welcome2024!"):
        self.reply = reply
        self.calls = []

    async def draft(self, history, property_context, new_message):
        self.calls.append(new_message)
        return self.reply


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def repo(db_session):
    return WhatsAppRepository(db_session)


@pytest.fixture
def provider():
    return StubWhatsAppProvider()


@pytest.fixture
def drafter():
    return CannedDrafter()


@pytest.fixture
def activity():
    return RecentActivityBuffer()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite://",
        WHATSAPP_APP_SECRET=APP_SECRET,
        WHATSAPP_VERIFY_TOKEN=VERIFY_TOKEN,
    )


@pytest.fixture
def client(session_factory, settings, provider, drafter, activity):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_whatsapp_provider] = lambda: provider
    app.dependency_overrides[get_drafter] = lambda: drafter
    app.dependency_overrides[get_activity_sink] = lambda: activity
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def account(repo, db_session):
    account = repo.create_account(
        user_id="host-1",
        waba_id="waba-1",
        phone_number_id=PHONE_NUMBER_ID,
        display_phone_number="+15550001111",
        access_token="plain-token",
    )
    db_session.commit()
    return account


@pytest.fixture
def linked_guest(repo, db_session, account):
    prop = repo.create_property(account.user_id, "Sunny Downtown Loft", wifi_password="Welcome2024!")
    db_session.flush()
    repo.link_property(account, prop.id, GUEST_PHONE)
    db_session.commit()
    return prop


@pytest.fixture
def conversation_id(repo, account):
    return repo.find_or_create_conversation(account.user_id, account.id, GUEST_PHONE, "+15550001111")


@pytest.fixture
def delivery():
    """Signed webhook body with one text message: returns (body bytes, headers)."""

    def _delivery(message_id: str = "wamid.1", body: str = "What's the wifi password?", secret: str = APP_SECRET):
        payload = {
            "object": "whatsapp_business_account",
            "entry": [{
                "id": "waba-1",
                "changes": [{
                    "field": "messages",
                    "value": {
                        "messaging_product": "whatsapp",
                        "metadata": {"display_phone_number": "+15550001111", "phone_number_id": PHONE_NUMBER_ID},
                        "contacts": [{"profile": {"name": "Jane Guest"}, "wa_id": GUEST_PHONE}],
                        "messages": [{
                            "from": GUEST_PHONE,
                            "id": message_id,
                            "timestamp": "1700000000",
                            "type": "text",
                            "text": {"body": body},
                        }],
                    },
                }],
            }],
        }
        raw = json.dumps(payload).encode("utf-8")
        signature = "sha256=" + hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
        return raw, {"X-Hub-Signature-256": signature, "Content-Type": "application/json"}

    return _delivery


@pytest.fixture
def sign_raw():
    def _sign(body: bytes, secret: str = APP_SECRET) -> str:
        return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()

    return _sign
