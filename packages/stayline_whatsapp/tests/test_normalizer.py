"""
Tests for message normalization.
"""

from datetime import datetime, timezone

import pytest

from stayline_whatsapp.contracts.payloads import WebhookContact, WebhookMetadata
from stayline_whatsapp.errors import MessageValidationError
from stayline_whatsapp.service.normalizer import normalize_message

METADATA = WebhookMetadata(display_phone_number="+15550001111", phone_number_id="106540352242922")
CONTACTS = [WebhookContact.model_validate({"wa_id": "15551234567", "profile": {"name": "Jane Guest"}})]


class TestNormalizeMessage:
    """Tests for normalize_message."""

    def test_text_message(self):
        raw = {
            "from": "15551234567",
            "id": "wamid.1",
            "timestamp": "1700000000",
            "type": "text",
            "text": {"body": "What's the wifi password?"},
        }

        message = normalize_message(raw, METADATA, CONTACTS)

        assert message.whatsapp_message_id == "wamid.1"
        assert message.direction == "inbound"
        assert message.from_phone_number == "15551234567"
        assert message.to_phone_number == "106540352242922"
        assert message.message_type == "text"
        assert message.message_text == "What's the wifi password?"
        assert message.contact_name == "Jane Guest"
        assert message.timestamp_whatsapp == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert message.content == raw

    def test_image_has_no_text(self):
        raw = {
            "from": "15551234567",
            "id": "wamid.2",
            "timestamp": "1700000000",
            "type": "image",
            "image": {"id": "media-1", "mime_type": "image/jpeg", "caption": "the door"},
        }

        message = normalize_message(raw, METADATA, CONTACTS)

        assert message.message_type == "image"
        assert message.message_text is None

    def test_missing_type_is_unknown(self):
        raw = {"from": "15551234567", "id": "wamid.3", "timestamp": "1700000000"}

        assert normalize_message(raw, METADATA, CONTACTS).message_type == "unknown"

    def test_unmatched_contact_has_no_name(self):
        raw = {"from": "15559999999", "id": "wamid.4", "timestamp": "1700000000", "type": "text", "text": {"body": "hi"}}

        assert normalize_message(raw, METADATA, CONTACTS).contact_name is None

    def test_integer_timestamp_accepted(self):
        raw = {"from": "15551234567", "id": "wamid.5", "timestamp": 1700000000, "type": "text", "text": {"body": "hi"}}

        assert normalize_message(raw, METADATA, []).timestamp_whatsapp.year == 2023

    @pytest.mark.parametrize("timestamp", ["not-a-number", None, "", "1.5e9x"])
    def test_malformed_timestamp_raises(self, timestamp):
        raw = {"from": "15551234567", "id": "wamid.6", "timestamp": timestamp, "type": "text", "text": {"body": "hi"}}

        with pytest.raises(MessageValidationError) as exc_info:
            normalize_message(raw, METADATA, CONTACTS)

        assert exc_info.value.code == "invalid_timestamp"

    def test_missing_id_raises(self):
        raw = {"from": "15551234567", "timestamp": "1700000000", "type": "text", "text": {"body": "hi"}}

        with pytest.raises(MessageValidationError):
            normalize_message(raw, METADATA, CONTACTS)
