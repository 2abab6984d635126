"""
License Server API Client
Handles communication between a verifying application and the license server
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger("LicenseAPIClient")


class APIEndpoint(Enum):
    """API endpoint definitions, relative to the configured base URL"""
    HEALTH = "/health"
    LICENSE_VERIFY_ONLINE = "/license/verify/online"
    DEVICE_REGISTER = "/device/register"
    DEVICE_INFO = "/device/{device_id}"


@dataclass
class APIResponse:
    """Standard API response structure"""
    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status_code: int = 0


class LicenseAPIClient:
    """
    Blocking HTTP client for the license server

    Every request is bounded by the configured timeout. Transport failures
    (connection errors and timeouts) are retried at most max_retries times;
    HTTP error statuses are never retried.
    """

    def __init__(self, base_url: str, timeout: float = 10, max_retries: int = 0,
                 api_token: Optional[str] = None, session: Optional[requests.Session] = None):
        """
        Initialize API client

        Args:
            base_url: License server base URL (e.g. "https://license.example.com/api/v1")
            timeout: Request timeout in seconds
            max_retries: Extra attempts after a transport failure
            api_token: Optional bearer token sent with every request
            session: Optional pre-configured requests session
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.api_token = api_token
        self.session = session or requests.Session()
        self.session.headers.update({
            'User-Agent': 'LicenseManager-Client/1.0.0',
            'Accept': 'application/json'
        })

        logger.info(f"LicenseAPIClient initialized with base URL: {self.base_url}")

    def _get_auth_headers(self) -> Dict[str, str]:
        headers = {}
        if self.api_token:
            headers['Authorization'] = f'Bearer {self.api_token}'
        return headers

    def _make_request(self, method: str, endpoint: APIEndpoint,
                      data: Optional[Dict[str, Any]] = None, **path_params) -> APIResponse:
        """
        Make HTTP request to the license server

        Args:
            method: HTTP method
            endpoint: API endpoint enum
            data: JSON request body
            **path_params: Values substituted into the endpoint path

        Returns:
            APIResponse object

        Raises:
            requests.RequestException: If the transport fails on every attempt
        """
        url = f"{self.base_url}{endpoint.value.format(**path_params)}"
        attempt = 0

        while True:
            try:
                logger.debug(f"Making {method} request to {url}")
                response = self.session.request(
                    method,
                    url,
                    json=data,
                    headers=self._get_auth_headers(),
                    timeout=self.timeout
                )
                break
            except (requests.ConnectionError, requests.Timeout) as e:
                if attempt >= self.max_retries:
                    logger.warning(f"Request to {url} failed after {attempt + 1} attempt(s): {e}")
                    raise
                attempt += 1
                logger.info(f"Retrying request to {url} ({attempt}/{self.max_retries})")

        try:
            body = response.json()
        except ValueError:
            body = None

        if response.status_code >= 400 or not isinstance(body, dict):
            error = body.get('error', {}) if isinstance(body, dict) else {}
            if not isinstance(error, dict):
                error = {'message': str(error)}
            return APIResponse(
                success=False,
                data=body if isinstance(body, dict) else None,
                error=error.get('message', f"HTTP {response.status_code}"),
                error_code=error.get('code', 'HTTP_ERROR' if response.status_code >= 400 else 'INVALID_RESPONSE'),
                status_code=response.status_code
            )

        return APIResponse(success=True, data=body, status_code=response.status_code)

    def health_check(self) -> APIResponse:
        """Check license server health"""
        return self._make_request('GET', APIEndpoint.HEALTH)

    def verify_online(self, device_id: str, app_id: str) -> APIResponse:
        """
        Ask the license server to verify the license bound to a device

        Args:
            device_id: Device fingerprint
            app_id: Application identifier

        Returns:
            APIResponse whose data is the server's verify result
        """
        return self._make_request(
            'POST',
            APIEndpoint.LICENSE_VERIFY_ONLINE,
            data={'device_id': device_id, 'app_id': app_id}
        )

    def register_device(self, device_id: str, device_name: str, app_id: str) -> APIResponse:
        """Register a device with the license server"""
        return self._make_request(
            'POST',
            APIEndpoint.DEVICE_REGISTER,
            data={'device_id': device_id, 'device_name': device_name, 'app_id': app_id}
        )

    def get_device(self, device_id: str) -> APIResponse:
        """Fetch device and license status from the license server"""
        return self._make_request('GET', APIEndpoint.DEVICE_INFO, device_id=device_id)

    def close(self):
        self.session.close()
