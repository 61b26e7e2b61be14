"""
Account Resolver

Resolves the business account an inbound change belongs to, using the
phone_number_id in the change metadata, and unwraps its access token.
"""

import logging

from cryptography.fernet import Fernet, InvalidToken

from stayline_whatsapp.persistence.gateway import PersistenceGateway
from stayline_whatsapp.persistence.models import WhatsAppAccount

logger = logging.getLogger(__name__)


def encrypt_access_token(access_token: str, encryption_key: str | None) -> str:
    """Encrypt a token for storage. Without a key the token is stored as-is."""
    if not encryption_key:
        return access_token
    return Fernet(encryption_key.encode()).encrypt(access_token.encode()).decode()


class AccountResolver:
    """
    Resolves WhatsApp business accounts from webhook data.
    """

    def __init__(self, gateway: PersistenceGateway, encryption_key: str | None = None):
        self.gateway = gateway
        self.encryption_key = encryption_key

    def resolve(self, phone_number_id: str | None) -> WhatsAppAccount | None:
        """
        Resolve the active account for a WhatsApp phone number ID.

        Returns:
            Account if found and active, None otherwise
        """
        if not phone_number_id:
            logger.warning("Change metadata has no phone_number_id")
            return None

        account = self.gateway.find_account_by_phone_number_id(phone_number_id)

        if account:
            logger.debug(
                "Resolved account from phone_number_id",
                extra={
                    "phone_number_id": phone_number_id,
                    "account_id": account.id,
                },
            )
        else:
            logger.warning(
                f"No active account found for phone_number_id: {phone_number_id}"
            )

        return account

    def get_access_token(self, account: WhatsAppAccount) -> str | None:
        """
        Get decrypted access token from account.

        Returns:
            Decrypted access token, None if not available
        """
        if not account.access_token:
            return None

        # Stored in clear when no key is configured (development)
        if not self.encryption_key:
            return account.access_token

        try:
            f = Fernet(self.encryption_key.encode())
            return f.decrypt(account.access_token.encode()).decode()
        except (InvalidToken, ValueError) as e:
            logger.error(
                f"Failed to decrypt access token: {e!r}",
                extra={"account_id": account.id},
            )
            return None
