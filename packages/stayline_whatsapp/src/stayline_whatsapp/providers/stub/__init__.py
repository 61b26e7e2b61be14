"""Stub WhatsApp provider for development."""

from stayline_whatsapp.providers.stub.client import StubWhatsAppProvider

__all__ = ["StubWhatsAppProvider"]
