"""
Asymmetric Signing for License Manager

RSA-PSS signatures (SHA-256, MGF1-SHA-256) over license ciphertexts, plus PEM
encoding and decoding of the key pair. Private keys are armored as PKCS#1
("RSA PRIVATE KEY") and public keys as SubjectPublicKeyInfo ("PUBLIC KEY").
"""

import logging

from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa, padding

from licensemanager.errors import InvalidKeyFormat, KeyTypeMismatch

logger = logging.getLogger(__name__)

RSA_KEY_SIZE = 4096

_PSS = padding.PSS(
    mgf=padding.MGF1(hashes.SHA256()),
    salt_length=padding.PSS.MAX_LENGTH
)


def generate_rsa_key_pair(key_size: int = RSA_KEY_SIZE):
    """
    Generate an RSA key pair

    Args:
        key_size: Modulus size in bits

    Returns:
        Tuple of (private_key, public_key)
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    logger.info(f"Generated RSA-{key_size} key pair")
    return private_key, private_key.public_key()


def sign_data(data: bytes, private_key: rsa.RSAPrivateKey) -> bytes:
    """
    Sign data with an RSA private key using PSS padding

    Args:
        data: Message to sign
        private_key: RSA private key

    Returns:
        Signature bytes (modulus-sized)
    """
    if not isinstance(private_key, rsa.RSAPrivateKey):
        raise KeyTypeMismatch("signing key must be an RSA private key")
    return private_key.sign(data, _PSS, hashes.SHA256())


def verify_signature(data: bytes, signature: bytes, public_key: rsa.RSAPublicKey) -> bool:
    """
    Verify an RSA-PSS signature

    Args:
        data: Original message
        signature: Signature to check
        public_key: RSA public key

    Returns:
        True if the signature is valid, False on any mismatch
    """
    if not isinstance(public_key, rsa.RSAPublicKey):
        raise KeyTypeMismatch("verification key must be an RSA public key")
    try:
        public_key.verify(signature, data, _PSS, hashes.SHA256())
        return True
    except InvalidSignature:
        return False


def encode_private_key(private_key: rsa.RSAPrivateKey) -> bytes:
    """Encode an RSA private key as PKCS#1 PEM"""
    return private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption()
    )


def encode_public_key(public_key: rsa.RSAPublicKey) -> bytes:
    """Encode an RSA public key as SubjectPublicKeyInfo PEM"""
    return public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _looks_like(pem_data: bytes, marker: bytes) -> bool:
    return b"-----BEGIN " + marker in pem_data


def decode_private_key(pem_data: bytes) -> rsa.RSAPrivateKey:
    """
    Decode an RSA private key from PEM

    Args:
        pem_data: PEM encoded private key

    Returns:
        RSA private key

    Raises:
        KeyTypeMismatch: If the PEM holds a public key or a non-RSA key
        InvalidKeyFormat: If the PEM cannot be parsed
    """
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("utf-8")
    if _looks_like(pem_data, b"PUBLIC KEY") or _looks_like(pem_data, b"RSA PUBLIC KEY"):
        raise KeyTypeMismatch("expected a private key, got a public key")
    try:
        key = serialization.load_pem_private_key(pem_data, password=None)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyFormat(f"failed to decode private key: {e}") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyTypeMismatch("not an RSA private key")
    return key


def decode_public_key(pem_data: bytes) -> rsa.RSAPublicKey:
    """
    Decode an RSA public key from PEM

    Args:
        pem_data: PEM encoded public key

    Returns:
        RSA public key

    Raises:
        KeyTypeMismatch: If the PEM holds a private key or a non-RSA key
        InvalidKeyFormat: If the PEM cannot be parsed
    """
    if isinstance(pem_data, str):
        pem_data = pem_data.encode("utf-8")
    if _looks_like(pem_data, b"PRIVATE KEY") or _looks_like(pem_data, b"RSA PRIVATE KEY"):
        raise KeyTypeMismatch("expected a public key, got a private key")
    try:
        key = serialization.load_pem_public_key(pem_data)
    except (ValueError, TypeError, UnsupportedAlgorithm) as e:
        raise InvalidKeyFormat(f"failed to decode public key: {e}") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyTypeMismatch("not an RSA public key")
    return key
