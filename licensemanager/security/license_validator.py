"""
License Manager Verification Engine

This module verifies license tokens under the three supported modes:

- Offline: local key material only, no network
- Online: the remote license server is the sole authority
- Dual: both checks must pass independently

A pass on one side of a dual check never compensates for a failure on the
other. Errors are raised as LicenseManagerError subclasses; when a result was
built before the failure (expired license, dual failures) it is attached to
the exception as ``result``.

Verifiers hold only their configuration and key material; nothing is
mutated between calls, so instances are safe to share across threads.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Union

import requests
from cryptography.hazmat.primitives.asymmetric import rsa

from licensemanager.backend_api_client import LicenseAPIClient
from licensemanager.errors import (
    DeviceMismatch, ExpiredLicense, InvalidLicense, LicenseManagerError, NetworkError
)
from licensemanager.license_codec import decode_license
from licensemanager.license_models import LicenseType, VerifyResult
from licensemanager.security.crypto_layer import load_aes_key
from licensemanager.security.signing import decode_public_key

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class OfflineVerifier:
    """Verifies license tokens using only local key material"""

    def __init__(self, verification_key: rsa.RSAPublicKey, symmetric_key: bytes,
                 clock: Optional[Clock] = None):
        """
        Args:
            verification_key: RSA public key of the issuer
            symmetric_key: 32-byte AES key
            clock: Returns the current time (defaults to UTC now)
        """
        self.verification_key = verification_key
        self.symmetric_key = load_aes_key(symmetric_key)
        self.clock = clock or _utc_now

    @classmethod
    def from_pem(cls, public_key_pem: bytes, aes_key: bytes,
                 clock: Optional[Clock] = None) -> "OfflineVerifier":
        """Build a verifier from a PEM public key and raw AES key"""
        return cls(decode_public_key(public_key_pem), aes_key, clock=clock)

    def verify(self, token: str, device_id: str) -> VerifyResult:
        """
        Verify a license token offline

        Args:
            token: License token
            device_id: Device ID of the current machine

        Returns:
            VerifyResult for a valid, unexpired license

        Raises:
            InvalidLicense: If the token cannot be parsed or any cryptographic check fails
            DeviceMismatch: If the license is bound to another device
            ExpiredLicense: If the license has expired (result attached)
        """
        try:
            license = decode_license(token, self.verification_key, self.symmetric_key)
        except InvalidLicense:
            logger.warning("Offline verification failed: license token rejected")
            raise
        except LicenseManagerError as e:
            # Malformed text and key errors are not distinguished to the caller
            logger.warning("Offline verification failed: license token rejected")
            raise InvalidLicense() from e

        if license.device_id != device_id:
            logger.warning(f"Device mismatch: license bound to {license.device_id[:8]}...")
            raise DeviceMismatch()

        expired = self.clock() > license.expiry_date

        result = VerifyResult(
            valid=not expired,
            expired=expired,
            expiry_date=license.expiry_date,
            device_id=license.device_id,
            license_type=license.license_type.value,
            message="Offline verification"
        )

        if expired:
            result.message = "License expired"
            logger.warning(f"License expired on {license.expiry_date.isoformat()}")
            raise ExpiredLicense(result=result)

        logger.info("Offline license verification successful")
        return result


@dataclass
class OnlineConfig:
    """Online verification configuration"""
    api_url: str
    app_id: str
    timeout: float = 10
    retries: int = 0
    api_token: Optional[str] = None


class OnlineVerifier:
    """Delegates verification to the remote license server"""

    def __init__(self, config: OnlineConfig, client: Optional[LicenseAPIClient] = None):
        self.config = config
        self.client = client or LicenseAPIClient(
            config.api_url,
            timeout=config.timeout,
            max_retries=config.retries,
            api_token=config.api_token
        )

    def verify(self, device_id: str) -> VerifyResult:
        """
        Verify a device's license with the license server

        Args:
            device_id: Device ID of the current machine

        Returns:
            The server's VerifyResult, unmodified

        Raises:
            NetworkError: On transport failure, timeout, error status or bad body
        """
        try:
            response = self.client.verify_online(device_id, self.config.app_id)
        except requests.RequestException as e:
            logger.warning(f"Online verification transport failure: {e}")
            raise NetworkError() from e

        if not response.success or response.status_code != 200:
            logger.warning(
                f"Online verification rejected: HTTP {response.status_code} {response.error_code}"
            )
            raise NetworkError(f"network verification failed: {response.error or 'bad response'}")

        try:
            return VerifyResult.from_dict(response.data)
        except (KeyError, ValueError, TypeError) as e:
            logger.warning(f"Online verification returned an undecodable result: {e}")
            raise NetworkError("network verification failed: undecodable response") from e


class DualVerifier:
    """Requires both the offline and the online check to pass"""

    def __init__(self, offline: OfflineVerifier, online: OnlineVerifier):
        self.offline = offline
        self.online = online

    def verify(self, token: str, device_id: str) -> VerifyResult:
        """
        Verify a license token offline and online

        Args:
            token: License token for the offline check
            device_id: Device ID of the current machine

        Returns:
            Combined VerifyResult when both checks pass

        Raises:
            LicenseManagerError: The offline error, the online error, or
                InvalidLicense when the combined result is not valid; the
                dual result is attached in every case
        """
        try:
            offline_result = self.offline.verify(token, device_id)
        except LicenseManagerError as e:
            e.result = VerifyResult(
                valid=False,
                expired=isinstance(e, ExpiredLicense),
                device_id=device_id,
                license_type=LicenseType.DUAL.value,
                offline_valid=False,
                online_valid=False,
                message="Offline verification failed"
            )
            raise

        try:
            online_result = self.online.verify(device_id)
        except LicenseManagerError as e:
            e.result = VerifyResult(
                valid=False,
                expired=offline_result.expired,
                expiry_date=offline_result.expiry_date,
                device_id=device_id,
                license_type=LicenseType.DUAL.value,
                offline_valid=offline_result.valid,
                online_valid=False,
                message="Online verification failed"
            )
            raise

        offline_ok = offline_result.valid and not offline_result.expired
        online_ok = online_result.valid and not online_result.expired
        valid = offline_ok and online_ok

        result = VerifyResult(
            valid=valid,
            expired=offline_result.expired or online_result.expired,
            expiry_date=offline_result.expiry_date,
            device_id=device_id,
            license_type=LicenseType.DUAL.value,
            offline_valid=offline_ok,
            online_valid=online_ok,
            message="Dual verification"
        )

        if not valid:
            result.message = "Dual verification failed"
            logger.warning(
                f"Dual verification failed (offline_valid={offline_ok}, online_valid={online_ok})"
            )
            raise InvalidLicense(result=result)

        logger.info("Dual license verification successful")
        return result


Verifier = Union[OfflineVerifier, OnlineVerifier, DualVerifier]


def verify(verifier: Verifier, device_id: str, token: Optional[str] = None) -> VerifyResult:
    """
    Single entry point for every verification mode

    Args:
        verifier: Offline, online or dual verifier
        device_id: Device ID of the current machine
        token: License token (required for offline and dual)

    Returns:
        VerifyResult from the selected verifier
    """
    if isinstance(verifier, OnlineVerifier):
        return verifier.verify(device_id)
    if isinstance(verifier, (OfflineVerifier, DualVerifier)):
        if token is None:
            raise ValueError(f"{type(verifier).__name__} requires a license token")
        return verifier.verify(token, device_id)
    raise TypeError(f"unsupported verifier: {type(verifier).__name__}")


def verify_offline(token: str, device_id: str, verification_key: rsa.RSAPublicKey,
                   symmetric_key: bytes, clock: Optional[Clock] = None) -> VerifyResult:
    """Verify a token using only local key material"""
    return OfflineVerifier(verification_key, symmetric_key, clock=clock).verify(token, device_id)


def verify_online(device_id: str, config: OnlineConfig) -> VerifyResult:
    """Verify a device's license with the license server"""
    return OnlineVerifier(config).verify(device_id)


def verify_dual(token: str, device_id: str, verification_key: rsa.RSAPublicKey,
                symmetric_key: bytes, config: OnlineConfig,
                clock: Optional[Clock] = None) -> VerifyResult:
    """Verify a token offline and the device online; both must pass"""
    offline = OfflineVerifier(verification_key, symmetric_key, clock=clock)
    return DualVerifier(offline, OnlineVerifier(config)).verify(token, device_id)
