"""
Key Material Management

Loads and generates the three pieces of key material used by the protocol:

- private_key.pem: RSA-4096 signing key (issuer only)
- public_key.pem: RSA-4096 verification key (issuer and verifiers)
- aes_key.bin: 32-byte AES-256 key (issuer and verifiers)

Key material is passed explicitly to issuance and verification; nothing is
held in module-level state.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from cryptography.hazmat.primitives.asymmetric import rsa

from licensemanager.core.config_manager import KeyPaths
from licensemanager.errors import ConfigurationError
from licensemanager.security.crypto_layer import generate_aes_key, load_aes_key
from licensemanager.security.signing import (
    RSA_KEY_SIZE, decode_private_key, decode_public_key, encode_private_key,
    encode_public_key, generate_rsa_key_pair
)

logger = logging.getLogger("KeyManager")

PRIVATE_KEY_FILE = "private_key.pem"
PUBLIC_KEY_FILE = "public_key.pem"
AES_KEY_FILE = "aes_key.bin"


@dataclass
class KeyMaterial:
    """Keys handed to issuance and verification"""
    verification_key: rsa.RSAPublicKey
    symmetric_key: bytes
    signing_key: Optional[rsa.RSAPrivateKey] = None

    @property
    def can_issue(self) -> bool:
        return self.signing_key is not None


class KeyManager:
    """Reads and writes key files at the configured locations"""

    def __init__(self, paths: KeyPaths, resolve: Optional[Callable[[str], Path]] = None):
        """
        Args:
            paths: Key file locations
            resolve: Maps a configured path to a filesystem path
        """
        self.paths = paths
        self._resolve = resolve or Path

    def _read(self, configured: str) -> bytes:
        path = self._resolve(configured)
        try:
            return Path(path).read_bytes()
        except OSError as e:
            raise ConfigurationError(f"Cannot read key file {path}: {e.strerror or e}") from e

    def load_verifier_keys(self) -> KeyMaterial:
        """Load the public key and AES key"""
        material = KeyMaterial(
            verification_key=decode_public_key(self._read(self.paths.public_key)),
            symmetric_key=load_aes_key(self._read(self.paths.aes_key))
        )
        logger.debug("Verifier key material loaded")
        return material

    def load_issuer_keys(self) -> KeyMaterial:
        """Load the full key set, including the private signing key"""
        signing_key = decode_private_key(self._read(self.paths.private_key))
        material = KeyMaterial(
            verification_key=signing_key.public_key(),
            symmetric_key=load_aes_key(self._read(self.paths.aes_key)),
            signing_key=signing_key
        )
        logger.debug("Issuer key material loaded")
        return material

    @staticmethod
    def generate_key_files(directory: Union[str, Path], overwrite: bool = False,
                           key_size: int = RSA_KEY_SIZE) -> KeyPaths:
        """
        Generate a fresh key set on disk

        Args:
            directory: Target directory (created if missing)
            overwrite: Replace existing key files
            key_size: RSA modulus size in bits

        Returns:
            KeyPaths pointing at the new files

        Raises:
            ConfigurationError: If a key file exists and overwrite is False
        """
        directory = Path(directory)
        targets = {
            "private_key": directory / PRIVATE_KEY_FILE,
            "public_key": directory / PUBLIC_KEY_FILE,
            "aes_key": directory / AES_KEY_FILE,
        }

        existing = [str(p) for p in targets.values() if p.exists()]
        if existing and not overwrite:
            raise ConfigurationError(f"Key files already exist: {', '.join(existing)}")

        directory.mkdir(parents=True, exist_ok=True)
        private_key, public_key = generate_rsa_key_pair(key_size)

        _write_secret(targets["private_key"], encode_private_key(private_key))
        targets["public_key"].write_bytes(encode_public_key(public_key))
        _write_secret(targets["aes_key"], generate_aes_key())

        logger.info(f"Generated RSA-{key_size} and AES-256 keys in {directory}")
        return KeyPaths(**{name: str(path) for name, path in targets.items()})


def _write_secret(path: Path, data: bytes) -> None:
    """Write a file readable only by the owner"""
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, 'wb') as f:
        f.write(data)
