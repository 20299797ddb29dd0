"""Shared fixtures data for the decryption test suite."""

import base64
import json
from pathlib import Path
from typing import Dict

from cryptography.hazmat.decrepit.ciphers.algorithms import TripleDES
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, modes

from image_decrypt.config import Settings

TEST_KEY = "abcdefghijklmnopqrstuvwx"  # 24 bytes
TEST_IV = "12345678"


def encrypt_image(plaintext: bytes, key: str = TEST_KEY, iv: str = TEST_IV,
                  encode: bool = True) -> bytes:
    """Produce ciphertext in the format the decryptor expects."""
    padder = padding.PKCS7(64).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(TripleDES(key.encode()), modes.CBC(iv.encode())).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()
    return base64.b64encode(ciphertext) if encode else ciphertext


def write_encrypted(path: Path, plaintext: bytes) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(encrypt_image(plaintext))
    return path


def make_settings(base: Path, **values) -> Settings:
    """Settings rooted in a temporary directory with input/ and output/ beneath it."""
    (base / "input").mkdir(parents=True, exist_ok=True)
    config = {
        "input_dir": str(base / "input"),
        "output_dir": str(base / "output"),
        "cache_file": str(base / "cache.txt"),
        "key": TEST_KEY,
        "iv": TEST_IV,
        "coroutine": 2,
    }
    config.update(values)
    return Settings(config, base_dir=base)


def write_config(path: Path, values: Dict) -> Path:
    path.write_text(json.dumps(values), encoding="utf-8")
    return path
