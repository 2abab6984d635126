"""
License Manager Device Fingerprinting

This module derives the device identity a license is bound to. The identity
is a SHA-256 hex digest of the concatenation of:

- host name
- operating system identifier (e.g. "linux", "darwin", "windows")
- machine architecture (e.g. "x86_64", "arm64")
- the USER and USERNAME environment values

The result is deterministic for a given machine, user and operating system.
If the host name cannot be read the derivation fails with
DeviceIDUnavailable; no fallback identity is ever synthesized.

Classes:
    DeviceFingerprint: Collects host information and derives the device ID

Functions:
    get_device_id: Derive the device ID for the current machine
"""

import hashlib
import logging
import os
import platform
import socket
from typing import Dict, Optional, Mapping

from licensemanager.errors import DeviceIDUnavailable

logger = logging.getLogger(__name__)


class DeviceFingerprint:
    """
    Device fingerprinting for license binding

    Host lookups are injectable so the derivation can be exercised with
    fixed values.
    """

    def __init__(self,
                 hostname_provider=socket.gethostname,
                 environ: Optional[Mapping[str, str]] = None):
        """
        Initialize device fingerprinting

        Args:
            hostname_provider: Callable returning the host name
            environ: Environment mapping (defaults to os.environ)
        """
        self._hostname_provider = hostname_provider
        self._environ = environ if environ is not None else os.environ

    def collect_host_info(self) -> Dict[str, str]:
        """
        Collect the host values that make up the fingerprint

        Returns:
            Dictionary of fingerprint components in derivation order

        Raises:
            DeviceIDUnavailable: If the host name cannot be read
        """
        try:
            hostname = self._hostname_provider()
        except OSError as e:
            raise DeviceIDUnavailable(f"failed to read host name: {e}") from e

        if not hostname:
            raise DeviceIDUnavailable("host name is empty")

        return {
            "hostname": hostname,
            "os": platform.system().lower(),
            "arch": platform.machine().lower(),
            "user": self._environ.get("USER", ""),
            "username": self._environ.get("USERNAME", ""),
        }

    def derive(self) -> str:
        """
        Derive the device ID

        Returns:
            64-character SHA-256 hex digest
        """
        info = self.collect_host_info()
        fingerprint = hashlib.sha256("".join(info.values()).encode("utf-8")).hexdigest()
        logger.debug(f"Derived device ID: {fingerprint[:16]}...")
        return fingerprint


def get_device_id() -> str:
    """Derive the device ID for the current machine"""
    return DeviceFingerprint().derive()
