"""
Tests for the webhook endpoints.
"""

from stayline_whatsapp.persistence.models import Message
from stayline_whatsapp.streams.activity import ActivityEvent


class TestVerificationHandshake:
    """GET /webhooks/whatsapp"""

    def test_echoes_challenge(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "verify-me", "hub.challenge": "1158201444"},
        )

        assert response.status_code == 200
        assert response.text == "1158201444"
        assert response.headers["content-type"].startswith("text/plain")

    def test_wrong_token(self, client):
        response = client.get(
            "/webhooks/whatsapp",
            params={"hub.mode": "subscribe", "hub.verify_token": "wrong", "hub.challenge": "1158201444"},
        )

        assert response.status_code == 403
        assert response.json() == {"detail": "Verification failed"}

    def test_missing_params(self, client):
        assert client.get("/webhooks/whatsapp").status_code == 403


class TestReceiveWebhook:
    """POST /webhooks/whatsapp"""

    def test_invalid_signature_rejected(self, client, account, delivery, provider, activity, db_session):
        body, headers = delivery(secret="someone-else")

        response = client.post("/webhooks/whatsapp", content=body, headers=headers)

        assert response.status_code == 401
        assert response.json() == {"detail": "Invalid signature"}
        assert db_session.query(Message).count() == 0
        assert provider.sent_messages == []
        assert activity.of_type(ActivityEvent.WEBHOOK_REJECTED)[0]["reason"] == "invalid_signature"

    def test_missing_signature_rejected(self, client, delivery):
        body, _ = delivery()

        response = client.post("/webhooks/whatsapp", content=body, headers={"Content-Type": "application/json"})

        assert response.status_code == 401

    def test_invalid_json(self, client, sign_raw):
        body = b"{not json"

        response = client.post("/webhooks/whatsapp", content=body, headers={"X-Hub-Signature-256": sign_raw(body)})

        assert response.status_code == 400

    def test_non_object_body(self, client, sign_raw):
        body = b"[1, 2, 3]"

        response = client.post("/webhooks/whatsapp", content=body, headers={"X-Hub-Signature-256": sign_raw(body)})

        assert response.status_code == 400

    def test_delivery_is_processed_before_ack(self, client, linked_guest, delivery, provider, drafter, db_session):
        body, headers = delivery()

        response = client.post("/webhooks/whatsapp", content=body, headers=headers)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["messages"] == {"done": 1}
        assert drafter.calls == ["What's the wifi password?"]
        assert provider.sent_messages[0]["text"] == "The WiFi password is Welcome2024!"
        assert db_session.query(Message).count() == 2

    def test_unknown_account_still_acknowledged(self, client, delivery, db_session):
        body, headers = delivery()

        response = client.post("/webhooks/whatsapp", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["accounts_missing"] == 1
        assert db_session.query(Message).count() == 0

    def test_redelivery_is_idempotent(self, client, linked_guest, delivery, provider):
        body, headers = delivery()

        client.post("/webhooks/whatsapp", content=body, headers=headers)
        response = client.post("/webhooks/whatsapp", content=body, headers=headers)

        assert response.status_code == 200
        assert response.json()["messages"] == {"duplicate": 1}
        assert len(provider.sent_messages) == 1


class TestHealth:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy", "service": "whatsapp-webhook"}
