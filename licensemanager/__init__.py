"""
License Manager

Device-bound software licenses: issuance of encrypted, signed license tokens
and their verification offline, online or both.
"""

from licensemanager.errors import (
    AuthenticationFailed, ConfigurationError, DeviceIDUnavailable, DeviceMismatch,
    ExpiredLicense, InvalidKeyFormat, InvalidKeyLength, InvalidLicense, KeyTypeMismatch,
    LicenseManagerError, LicenseNotFound, MalformedToken, NetworkError
)
from licensemanager.key_manager import KeyManager, KeyMaterial
from licensemanager.license_codec import (
    decode_license, encode_license, issue_license, load_license_from_file
)
from licensemanager.license_models import License, LicenseType, VerifyResult
from licensemanager.security import (
    DualVerifier, OfflineVerifier, OnlineConfig, OnlineVerifier, get_device_id,
    verify, verify_dual, verify_offline, verify_online
)

__version__ = "1.0.0"

__all__ = [
    'AuthenticationFailed', 'ConfigurationError', 'DeviceIDUnavailable', 'DeviceMismatch',
    'ExpiredLicense', 'InvalidKeyFormat', 'InvalidKeyLength', 'InvalidLicense', 'KeyTypeMismatch',
    'LicenseManagerError', 'LicenseNotFound', 'MalformedToken', 'NetworkError',
    'KeyManager', 'KeyMaterial',
    'decode_license', 'encode_license', 'issue_license', 'load_license_from_file',
    'License', 'LicenseType', 'VerifyResult',
    'DualVerifier', 'OfflineVerifier', 'OnlineConfig', 'OnlineVerifier', 'get_device_id',
    'verify', 'verify_dual', 'verify_offline', 'verify_online'
]
