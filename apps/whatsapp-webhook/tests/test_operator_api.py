"""
Tests for the operator conversation API.
"""

from stayline_whatsapp.persistence.models import Message
from stayline_whatsapp.providers.base import ProviderError


class TestListConversations:
    def test_empty(self, client):
        response = client.get("/conversations")

        assert response.status_code == 200
        assert response.json() == {"success": True, "conversations": [], "count": 0}

    def test_lists_with_property_name(self, client, linked_guest, delivery):
        body, headers = delivery()
        client.post("/webhooks/whatsapp", content=body, headers=headers)

        data = client.get("/conversations").json()

        assert data["count"] == 1
        conversation = data["conversations"][0]
        assert conversation["customer_phone_number"] == "15551234567"
        assert conversation["property_name"] == "Sunny Downtown Loft"
        assert conversation["last_message_direction"] == "outbound"
        assert conversation["requires_manual_intervention"] is False

    def test_invalid_limit(self, client):
        assert client.get("/conversations", params={"limit": 0}).status_code == 400


class TestListMessages:
    def test_unknown_conversation(self, client):
        assert client.get("/conversations/999/messages").status_code == 404

    def test_messages_in_order(self, client, linked_guest, delivery):
        body, headers = delivery()
        client.post("/webhooks/whatsapp", content=body, headers=headers)
        conversation_id = client.get("/conversations").json()["conversations"][0]["id"]

        data = client.get(f"/conversations/{conversation_id}/messages").json()

        assert [m["direction"] for m in data["messages"]] == ["inbound", "outbound"]
        assert data["messages"][1]["is_auto_response"] is True
        assert data["messages"][0]["contact_name"] == "Jane Guest"


class TestSendMessage:
    def test_sends_manual_reply(self, client, conversation_id, provider, db_session):
        response = client.post(
            f"/conversations/{conversation_id}/send-message",
            json={"message": "Your door code is 4821."},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["whatsapp_message_id"] == provider.sent_messages[0]["message_id"]
        assert data["saved_message"]["is_auto_response"] is False
        assert data["saved_message"]["direction"] == "outbound"
        assert provider.sent_messages[0]["to"] == "15551234567"

        stored = db_session.query(Message).filter(Message.whatsapp_message_id == data["whatsapp_message_id"]).one()
        assert stored.message_text == "Your door code is 4821."

    def test_empty_message(self, client, conversation_id, provider):
        response = client.post(f"/conversations/{conversation_id}/send-message", json={"message": "   "})

        assert response.status_code == 400
        assert provider.sent_messages == []

    def test_missing_body_field(self, client, conversation_id):
        assert client.post(f"/conversations/{conversation_id}/send-message", json={}).status_code == 400

    def test_unknown_conversation(self, client):
        response = client.post("/conversations/999/send-message", json={"message": "hello"})

        assert response.status_code == 404

    def test_expired_token(self, client, conversation_id, provider):
        provider.fail_with = ProviderError("Error validating access token", code="190")

        response = client.post(f"/conversations/{conversation_id}/send-message", json={"message": "hello"})

        assert response.status_code == 401
        detail = response.json()["detail"]
        assert detail["token_expired"] is True
        assert detail["error_code"] == 190

    def test_other_provider_error(self, client, conversation_id, provider):
        provider.fail_with = ProviderError("Recipient not on WhatsApp", code="131026")

        response = client.post(f"/conversations/{conversation_id}/send-message", json={"message": "hello"})

        assert response.status_code == 502
        assert response.json()["detail"]["error_code"] == "131026"


class TestAIResponsePreview:
    def test_preview_never_sends(self, client, linked_guest, conversation_id, provider, db_session):
        response = client.post(
            f"/conversations/{conversation_id}/ai-response",
            json={"message": "What's the wifi password?"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["ai_response"] == "The WiFi password is Welcome2024!"
        assert data["confidence"] == 0.98
        assert data["should_send"] is True
        assert data["would_auto_send"] is True
        assert data["reasoning"] == "Question about well-documented property information"
        assert provider.sent_messages == []
        assert db_session.query(Message).count() == 0

    def test_preview_low_confidence(self, client, conversation_id, drafter):
        drafter.reply = "Let me check with the host and get back to you"

        data = client.post(
            f"/conversations/{conversation_id}/ai-response",
            json={"message": "Can I bring my dog?"},
        ).json()

        assert data["confidence"] == 0.3
        assert data["would_auto_send"] is False

    def test_unknown_conversation(self, client):
        response = client.post("/conversations/999/ai-response", json={"message": "hello"})

        assert response.status_code == 404

    def test_empty_message(self, client, conversation_id):
        assert client.post(f"/conversations/{conversation_id}/ai-response", json={"message": ""}).status_code == 400
