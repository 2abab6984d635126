"""
License Manager Error Taxonomy

Every failure raised by the library derives from LicenseManagerError and
carries a stable error code. Verification errors may also carry the
VerifyResult that was built before the failure was detected, so callers can
still inspect the expiry date and device id of an expired license.

Cryptographic failures at the protocol layer are only ever reported as
InvalidLicense (or MalformedToken when the text cannot be parsed at all).
Device mismatch and expiry are reported separately because they are not
secrets.
"""

from typing import Optional


class LicenseManagerError(Exception):
    """Base class for all license manager errors"""

    code = "LICENSE_MANAGER_ERROR"
    default_message = "license manager error"

    def __init__(self, message: Optional[str] = None, result=None):
        super().__init__(message or self.default_message)
        self.result = result


class InvalidKeyLength(LicenseManagerError):
    code = "INVALID_KEY_LENGTH"
    default_message = "key must be 32 bytes for AES-256"


class InvalidKeyFormat(LicenseManagerError):
    code = "INVALID_KEY_FORMAT"
    default_message = "invalid key format"


class KeyTypeMismatch(LicenseManagerError):
    code = "KEY_TYPE_MISMATCH"
    default_message = "key is not of the expected type"


class MalformedToken(LicenseManagerError):
    code = "MALFORMED_TOKEN"
    default_message = "malformed license token"


class AuthenticationFailed(LicenseManagerError):
    code = "AUTHENTICATION_FAILED"
    default_message = "message authentication failed"


class InvalidLicense(LicenseManagerError):
    code = "INVALID_LICENSE"
    default_message = "invalid license"


class DeviceMismatch(LicenseManagerError):
    code = "DEVICE_MISMATCH"
    default_message = "device ID mismatch"


class ExpiredLicense(LicenseManagerError):
    code = "EXPIRED_LICENSE"
    default_message = "license expired"


class NetworkError(LicenseManagerError):
    code = "NETWORK_ERROR"
    default_message = "network verification failed"


class DeviceIDUnavailable(LicenseManagerError):
    code = "DEVICE_ID_UNAVAILABLE"
    default_message = "device ID unavailable"


class LicenseNotFound(LicenseManagerError):
    code = "LICENSE_NOT_FOUND"
    default_message = "license not found"


class ConfigurationError(LicenseManagerError):
    code = "CONFIGURATION_ERROR"
    default_message = "configuration error"
