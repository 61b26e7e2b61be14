"""Meta Cloud API WhatsApp provider."""

from stayline_whatsapp.providers.meta_cloud.client import MetaCloudWhatsAppProvider
from stayline_whatsapp.providers.meta_cloud.webhook import parse_changes, validate_signature

__all__ = [
    "MetaCloudWhatsAppProvider",
    "parse_changes",
    "validate_signature",
]
