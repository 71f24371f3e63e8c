"""Social connection tokens are stored Fernet-encrypted; the key is derived from secret_key."""

import base64
import hashlib
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from app.config import get_settings


class TokenDecryptionError(Exception):
    """Stored token cannot be decrypted with the current key (rotated secret or corrupt row)."""


@lru_cache
def _fernet_for(secret_key: str) -> Fernet:
    key_material = hashlib.sha256(secret_key.encode()).digest()
    derived = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"post_pipeline_social_tokens",
        iterations=100000,
    ).derive(key_material)
    return Fernet(base64.urlsafe_b64encode(derived))


def _get_fernet() -> Fernet:
    return _fernet_for(get_settings().secret_key)


def encrypt_token(plain: str) -> str:
    if not plain:
        return ""
    return _get_fernet().encrypt(plain.encode()).decode()


def decrypt_token(encrypted: str) -> str:
    if not encrypted:
        return ""
    try:
        return _get_fernet().decrypt(encrypted.encode()).decode()
    except InvalidToken as e:
        raise TokenDecryptionError("Stored access token could not be decrypted") from e
