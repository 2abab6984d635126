"""
Symmetric Cryptographic Layer for License Manager

This module implements authenticated encryption of license payloads using
AES-256-GCM. Every call to encrypt_aes draws a fresh random nonce, and the
output is a single sealed box laid out as:

    nonce (12 bytes) || ciphertext || tag (16 bytes)

Functions:
    generate_aes_key: Generate a random 32-byte AES key
    load_aes_key: Validate raw key bytes loaded from storage
    encrypt_aes: Seal a plaintext under a 32-byte key
    decrypt_aes: Open a sealed box, raising AuthenticationFailed on tamper
"""

import logging
import secrets

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from licensemanager.errors import InvalidKeyLength, AuthenticationFailed

logger = logging.getLogger(__name__)

AES_KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


def _check_key(key: bytes) -> None:
    if not isinstance(key, (bytes, bytearray)) or len(key) != AES_KEY_SIZE:
        size = len(key) if isinstance(key, (bytes, bytearray)) else "non-bytes"
        raise InvalidKeyLength(f"key must be {AES_KEY_SIZE} bytes for AES-256, got {size}")


def generate_aes_key() -> bytes:
    """Generate a new random AES-256 key"""
    return secrets.token_bytes(AES_KEY_SIZE)


def load_aes_key(raw: bytes) -> bytes:
    """
    Validate a raw AES key loaded from a key file

    Args:
        raw: Raw key bytes

    Returns:
        The key bytes, unchanged

    Raises:
        InvalidKeyLength: If the key is not exactly 32 bytes
    """
    _check_key(raw)
    return bytes(raw)


def encrypt_aes(plaintext: bytes, key: bytes) -> bytes:
    """
    Encrypt data using AES-256-GCM

    Args:
        plaintext: Data to encrypt
        key: 32-byte AES key

    Returns:
        Sealed box (nonce || ciphertext || tag)
    """
    _check_key(key)
    nonce = secrets.token_bytes(NONCE_SIZE)
    return nonce + AESGCM(bytes(key)).encrypt(nonce, plaintext, None)


def decrypt_aes(sealed: bytes, key: bytes) -> bytes:
    """
    Decrypt a sealed box produced by encrypt_aes

    Args:
        sealed: Sealed box (nonce || ciphertext || tag)
        key: 32-byte AES key

    Returns:
        Decrypted plaintext

    Raises:
        InvalidKeyLength: If the key is not 32 bytes
        AuthenticationFailed: If the box is truncated or fails authentication
    """
    _check_key(key)
    if len(sealed) < NONCE_SIZE:
        raise AuthenticationFailed("ciphertext too short")

    nonce, ciphertext = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
    try:
        return AESGCM(bytes(key)).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        logger.debug("AES-GCM tag verification failed")
        raise AuthenticationFailed() from e
