"""
Tests for webhook signature validation and the subscription handshake.
"""

import hashlib
import hmac

from stayline_whatsapp.providers.meta_cloud.webhook import validate_signature, verify_webhook_challenge


def _signature(payload: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()


class TestSignatureValidation:
    """Tests for webhook signature validation."""

    def test_valid_signature(self):
        """Test valid HMAC-SHA256 signature validation."""
        app_secret = "test_secret_key"
        payload = b'{"test": "data"}'

        assert validate_signature(payload, _signature(payload, app_secret), app_secret) is True

    def test_invalid_signature(self):
        """Test invalid signature is rejected."""
        assert validate_signature(b'{"test": "data"}', "sha256=invalid_signature_here", "secret") is False

    def test_missing_signature_prefix(self):
        """Test signature without sha256= prefix is rejected."""
        app_secret = "test_secret_key"
        payload = b'{"test": "data"}'
        bare = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()

        assert validate_signature(payload, bare, app_secret) is False

    def test_empty_signature(self):
        """Test empty signature is rejected."""
        assert validate_signature(b"payload", "", "secret") is False
        assert validate_signature(b"payload", None, "secret") is False

    def test_missing_secret_rejects(self):
        """Without a configured secret nothing verifies, even a matching header."""
        payload = b"payload"
        assert validate_signature(payload, _signature(payload, ""), "") is False
        assert validate_signature(payload, _signature(payload, "x"), None) is False

    def test_signature_covers_exact_bytes(self):
        """Re-serialized JSON with different whitespace must not verify."""
        secret = "secret"
        original = b'{"a": 1, "b": 2}'
        reserialized = b'{"a":1,"b":2}'

        assert validate_signature(reserialized, _signature(original, secret), secret) is False

    def test_mismatched_length_does_not_raise(self):
        assert validate_signature(b"payload", "sha256=ab", "secret") is False
        assert validate_signature(b"payload", "sha256=" + "f" * 500, "secret") is False

    def test_non_ascii_header_does_not_raise(self):
        assert validate_signature(b"payload", "sha256=çççç", "secret") is False

    def test_wrong_secret(self):
        payload = b'{"object": "whatsapp_business_account"}'
        assert validate_signature(payload, _signature(payload, "other"), "secret") is False


class TestWebhookChallenge:
    """Tests for the GET verification handshake."""

    def test_matching_token_echoes_challenge(self):
        assert verify_webhook_challenge("subscribe", "tok", "12345", "tok") == "12345"

    def test_wrong_mode_rejected(self):
        assert verify_webhook_challenge("unsubscribe", "tok", "12345", "tok") is None

    def test_wrong_token_rejected(self):
        assert verify_webhook_challenge("subscribe", "nope", "12345", "tok") is None

    def test_unconfigured_token_rejects_everything(self):
        assert verify_webhook_challenge("subscribe", "", "12345", "") is None
        assert verify_webhook_challenge("subscribe", None, "12345", None) is None
