"""
License Token Codec

Encodes a License into the portable, copy-paste safe token format and back:

    token = base64( RSA-PSS signature (512 bytes) || AES-GCM sealed box )

The payload is encrypted first and the signature is computed over the
ciphertext, so a verifier rejects forged or corrupted tokens before any
decryption is attempted. The token carries no version byte and no key id:
the decoder must already hold the one verification key and symmetric key.
"""

import base64
import binascii
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from licensemanager.errors import (
    AuthenticationFailed, InvalidKeyFormat, InvalidLicense, LicenseNotFound, MalformedToken
)
from licensemanager.license_models import License, LicenseType
from licensemanager.security.crypto_layer import encrypt_aes, decrypt_aes
from licensemanager.security.signing import sign_data, verify_signature

logger = logging.getLogger(__name__)

# RSA-4096 signature length; the token split depends on it
SIGNATURE_SIZE = 512


def serialize_license(license: License) -> bytes:
    """Canonical JSON bytes of a license (fixed field order, compact)"""
    return json.dumps(license.to_dict(), separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def deserialize_license(data: bytes) -> License:
    return License.from_dict(json.loads(data.decode("utf-8")))


def normalize_token(text: str) -> str:
    """Strip whitespace and line breaks picked up while copy-pasting a token"""
    return "".join(text.split())


def encode_license(license: License,
                   signing_key: rsa.RSAPrivateKey,
                   symmetric_key: bytes) -> str:
    """
    Encode a license into a license token

    Args:
        license: License to encode
        signing_key: RSA-4096 private key
        symmetric_key: 32-byte AES key

    Returns:
        Base64 license token
    """
    if isinstance(signing_key, rsa.RSAPrivateKey) and signing_key.key_size // 8 != SIGNATURE_SIZE:
        raise InvalidKeyFormat(
            f"signing key must produce {SIGNATURE_SIZE}-byte signatures, "
            f"got RSA-{signing_key.key_size}"
        )

    sealed = encrypt_aes(serialize_license(license), symmetric_key)
    signature = sign_data(sealed, signing_key)
    return base64.b64encode(signature + sealed).decode("ascii")


def decode_license(token: str,
                   verification_key: rsa.RSAPublicKey,
                   symmetric_key: bytes) -> License:
    """
    Decode and authenticate a license token

    Args:
        token: Base64 license token
        verification_key: RSA public key matching the issuing key
        symmetric_key: 32-byte AES key

    Returns:
        The decoded License

    Raises:
        MalformedToken: If the text is not canonical base64 or is too short
        InvalidLicense: If the signature, decryption or payload check fails
    """
    try:
        raw = base64.b64decode(token, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise MalformedToken("failed to decode base64") from e

    # Reject non-canonical encodings so the text itself is tamper-evident
    if base64.b64encode(raw).decode("ascii") != token:
        raise MalformedToken("non-canonical base64 encoding")

    if len(raw) < SIGNATURE_SIZE:
        raise MalformedToken("token shorter than signature")

    signature, sealed = raw[:SIGNATURE_SIZE], raw[SIGNATURE_SIZE:]

    if not verify_signature(sealed, signature, verification_key):
        raise InvalidLicense()

    try:
        payload = decrypt_aes(sealed, symmetric_key)
    except AuthenticationFailed as e:
        raise InvalidLicense() from e

    try:
        return deserialize_license(payload)
    except (ValueError, KeyError, TypeError) as e:
        raise InvalidLicense() from e


def issue_license(device_id: str,
                  license_type: Union[LicenseType, str],
                  expiry_date: datetime,
                  features: Optional[Iterable[str]],
                  signing_key: rsa.RSAPrivateKey,
                  symmetric_key: bytes,
                  created_at: Optional[datetime] = None) -> str:
    """
    Issue a license token bound to a device

    Args:
        device_id: Device fingerprint the license is bound to
        license_type: Offline, online or dual
        expiry_date: Last instant the license is valid
        features: Optional feature names
        signing_key: RSA-4096 private key
        symmetric_key: 32-byte AES key
        created_at: Issuance time (defaults to now)

    Returns:
        Base64 license token
    """
    license = License(
        device_id=device_id,
        expiry_date=expiry_date,
        license_type=LicenseType(license_type),
        features=list(features or []),
        created_at=created_at or datetime.now(timezone.utc),
    )
    token = encode_license(license, signing_key, symmetric_key)
    logger.info(
        f"Issued {license.license_type.value} license for device {device_id[:8]}... "
        f"expiring {license.expiry_date.isoformat()}"
    )
    return token


def load_license_from_file(path: Union[str, Path]) -> str:
    """
    Load a license token from a file

    Args:
        path: Path to the license file

    Returns:
        Token with whitespace and line breaks removed

    Raises:
        LicenseNotFound: If the file cannot be read
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LicenseNotFound(f"license file not readable: {path}") from e
    return normalize_token(text)
