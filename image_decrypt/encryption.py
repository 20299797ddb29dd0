"""Triple DES (CBC, PKCS#7) decryption for encrypted image files."""

import base64
import binascii
import logging
from typing import Union

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

logger = logging.getLogger(__name__)

BLOCK_SIZE_BITS = 64
VALID_KEY_LENGTHS = (8, 16, 24)
IV_LENGTH = 8

ENCODING_BASE64 = "base64"
ENCODING_RAW = "raw"
CIPHERTEXT_ENCODINGS = (ENCODING_BASE64, ENCODING_RAW)


class DecryptionError(ValueError):
    """Raised when ciphertext cannot be decoded, decrypted or unpadded."""
    pass


def _as_bytes(value: Union[str, bytes]) -> bytes:
    if isinstance(value, str):
        return value.encode('utf-8')
    return value


def validate_key_material(key: Union[str, bytes], iv: Union[str, bytes]) -> None:
    """
    Check key and IV lengths against Triple DES requirements.

    Raises:
        ValueError: If the key is not 8, 16 or 24 bytes or the IV is not 8 bytes
    """
    key_bytes = _as_bytes(key)
    iv_bytes = _as_bytes(iv)
    if len(key_bytes) not in VALID_KEY_LENGTHS:
        raise ValueError(f"Triple DES key must be 8, 16 or 24 bytes, got {len(key_bytes)}")
    if len(iv_bytes) != IV_LENGTH:
        raise ValueError(f"Triple DES IV must be {IV_LENGTH} bytes, got {len(iv_bytes)}")


def decrypt(ciphertext: bytes, key: Union[str, bytes], iv: Union[str, bytes]) -> bytes:
    """
    Decrypt raw Triple DES CBC ciphertext and strip PKCS#7 padding.

    Args:
        ciphertext: Encrypted bytes (length must be a multiple of 8)
        key: 8, 16 or 24 byte key
        iv: 8 byte initialisation vector

    Returns:
        Plaintext bytes

    Raises:
        DecryptionError: On bad block length or invalid padding
    """
    decryptor = Cipher(TripleDES(_as_bytes(key)), modes.CBC(_as_bytes(iv))).decryptor()
    unpadder = padding.PKCS7(BLOCK_SIZE_BITS).unpadder()
    try:
        padded = decryptor.update(ciphertext) + decryptor.finalize()
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError(f"Decryption failed: {e}") from e


class ImageDecryptor:
    """
    Decryption port bound to one key/IV pair.

    Encrypted image files written by the upstream tool are base64 text, so the
    plaintext is roughly 3/4 the size of the source file. ``raw`` encoding
    skips the base64 step for files holding binary ciphertext.
    """

    def __init__(self, key: Union[str, bytes], iv: Union[str, bytes],
                 ciphertext_encoding: str = ENCODING_BASE64):
        if ciphertext_encoding not in CIPHERTEXT_ENCODINGS:
            raise ValueError(f"Unknown ciphertext encoding: {ciphertext_encoding}")
        validate_key_material(key, iv)
        self.key = _as_bytes(key)
        self.iv = _as_bytes(iv)
        self.ciphertext_encoding = ciphertext_encoding

    def decode(self, data: bytes) -> bytes:
        """Turn file contents into raw ciphertext."""
        if self.ciphertext_encoding == ENCODING_RAW:
            return data
        try:
            return base64.b64decode(b"".join(data.split()), validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError(f"Invalid base64 ciphertext: {e}") from e

    def decrypt_bytes(self, data: bytes) -> bytes:
        return decrypt(self.decode(data), self.key, self.iv)

    __call__ = decrypt_bytes
