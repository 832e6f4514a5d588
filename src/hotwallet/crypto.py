"""At-rest encryption for generated key material.

Generated private keys and mnemonics leave the engine only as Fernet
ciphertexts, and senders may hand back such a ciphertext instead of a
plaintext key. The engine treats encryption as an opaque
``encrypt(str) -> str`` / ``decrypt(str) -> str`` capability; any object
with those two methods can replace ``KeyEncryptor``.
"""

import base64
import hashlib
import logging
import os
from typing import Optional, Protocol

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

# Base64 of the Fernet version byte plus the leading timestamp bytes
FERNET_PREFIX = "gAAAAA"

PBKDF2_ITERATIONS = 100000


class Encryptor(Protocol):
    """Symmetric encrypt/decrypt capability used to protect private keys."""

    def encrypt(self, plaintext: str) -> str: ...

    def decrypt(self, ciphertext: str) -> str: ...


def generate_master_key() -> str:
    """New random Fernet key, suitable for the MASTER_KEY setting."""
    return Fernet.generate_key().decode()


def derive_key_from_password(password: str, salt: Optional[bytes] = None) -> tuple[str, bytes]:
    """Stretch an operator passphrase into a Fernet key with PBKDF2-SHA256.

    The salt must be stored next to the ciphertexts; the same passphrase
    and salt always give the same key.

    Returns:
        Tuple of (Fernet key, salt)
    """
    salt = salt or os.urandom(16)
    raw = hashlib.pbkdf2_hmac("sha256", password.encode(), salt, PBKDF2_ITERATIONS, dklen=32)
    return base64.urlsafe_b64encode(raw).decode(), salt


class KeyEncryptor:
    """Fernet encryption of private keys and mnemonics.

    Usage:
        encryptor = KeyEncryptor(settings.master_key)
        stored = encryptor.encrypt(wif)
        wif = encryptor.decrypt(stored)
    """

    def __init__(self, master_key: str):
        self._fernet = Fernet(master_key.encode())

    def encrypt(self, plaintext: str) -> str:
        return self._fernet.encrypt(plaintext.encode()).decode()

    def decrypt(self, ciphertext: str) -> str:
        """Decrypt a stored secret.

        Raises:
            InvalidToken: If the ciphertext was made with another key or is corrupted
        """
        return self._fernet.decrypt(ciphertext.encode()).decode()

    def rotate_key(self, new_key: str, ciphertext: str) -> str:
        """Re-encrypt a stored secret under ``new_key``."""
        plaintext = self._fernet.decrypt(ciphertext.encode())
        return Fernet(new_key.encode()).encrypt(plaintext).decode()


def get_encryptor(master_key: Optional[str]) -> Optional[KeyEncryptor]:
    """Encryptor for the configured master key, or None when unset."""
    if not master_key:
        return None
    return KeyEncryptor(master_key)


def decrypt_if_encrypted(value: str, encryptor: Optional[Encryptor]) -> str:
    """Decrypt a private key just before signing.

    Values that are not Fernet tokens are plaintext keys and pass through.

    Raises:
        InvalidToken: If the value is a Fernet token that cannot be decrypted
    """
    if not value.startswith(FERNET_PREFIX):
        return value

    if encryptor is None:
        logger.warning("Encrypted private key supplied but no master key is configured")
        raise InvalidToken("No master key configured")

    return encryptor.decrypt(value)
