"""
Security package for License Manager

This package contains the cryptographic building blocks, device
fingerprinting and the license verification engine.
"""

from licensemanager.security.crypto_layer import decrypt_aes, encrypt_aes, generate_aes_key, load_aes_key
from licensemanager.security.hardware_fingerprint import DeviceFingerprint, get_device_id
from licensemanager.security.license_validator import (
    DualVerifier, OfflineVerifier, OnlineConfig, OnlineVerifier, Verifier,
    verify, verify_dual, verify_offline, verify_online
)
from licensemanager.security.signing import (
    decode_private_key, decode_public_key, encode_private_key, encode_public_key,
    generate_rsa_key_pair, sign_data, verify_signature
)

__all__ = [
    'decrypt_aes', 'encrypt_aes', 'generate_aes_key', 'load_aes_key',
    'DeviceFingerprint', 'get_device_id',
    'DualVerifier', 'OfflineVerifier', 'OnlineConfig', 'OnlineVerifier', 'Verifier',
    'verify', 'verify_dual', 'verify_offline', 'verify_online',
    'decode_private_key', 'decode_public_key', 'encode_private_key', 'encode_public_key',
    'generate_rsa_key_pair', 'sign_data', 'verify_signature'
]
