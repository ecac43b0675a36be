"""SQLAlchemy TypeDecorator for transparent Fernet encryption of text columns.

Used for the ConnectWise private key. The key is derived from the app
SECRET_KEY via PBKDF2, so rotating SECRET_KEY makes stored secrets
unreadable (they load as None and must be re-entered).
"""

import base64
import logging

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from sqlalchemy import Text, TypeDecorator

log = logging.getLogger(__name__)


def _get_fernet() -> Fernet:
    """Derive a Fernet key from the app secret key."""
    from ..config import settings

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"stacktracker-secret-encryption-v1",
        iterations=100_000,
    )
    key = base64.urlsafe_b64encode(kdf.derive(settings.secret_key.encode()))
    return Fernet(key)


def encrypt_value(plaintext: str) -> str:
    """Encrypt a secret. Returns a base64 Fernet token string."""
    return _get_fernet().encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str) -> str:
    """Decrypt a secret. Raises InvalidToken if the key does not match."""
    return _get_fernet().decrypt(ciphertext.encode()).decode()


class EncryptedText(TypeDecorator):
    """Transparently encrypts/decrypts text values stored in the database."""
    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return encrypt_value(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        try:
            return decrypt_value(value)
        except InvalidToken:
            log.warning("Stored secret could not be decrypted (SECRET_KEY changed?)")
            return None
