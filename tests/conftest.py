"""
Shared fixtures for the License Manager test suite

RSA-4096 key generation is slow, so key material is generated once per
test session.
"""

from datetime import datetime, timezone

import pytest

from licensemanager.key_manager import KeyMaterial
from licensemanager.security.crypto_layer import generate_aes_key
from licensemanager.security.signing import generate_rsa_key_pair

FIXED_NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def _key_material() -> KeyMaterial:
    private_key, public_key = generate_rsa_key_pair()
    return KeyMaterial(verification_key=public_key, symmetric_key=generate_aes_key(), signing_key=private_key)


@pytest.fixture(scope="session")
def issuer_keys() -> KeyMaterial:
    """Key set A: signing key, verification key and AES key"""
    return _key_material()


@pytest.fixture(scope="session")
def other_keys() -> KeyMaterial:
    """Key set B, unrelated to key set A"""
    return _key_material()


@pytest.fixture
def fixed_clock():
    """Clock frozen at FIXED_NOW"""
    return lambda: FIXED_NOW
