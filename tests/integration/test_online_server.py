#!/usr/bin/env python3
"""
Integration tests for online and dual verification
Runs the license server on a local port and verifies through real HTTP
"""

from datetime import datetime, timedelta, timezone

import pytest

from licensemanager.backend_api_client import LicenseAPIClient
from licensemanager.errors import InvalidLicense, LicenseManagerError, NetworkError
from licensemanager.license_codec import issue_license
from licensemanager.license_models import LicenseRecord
from licensemanager.license_server import ServerThread, create_app
from licensemanager.license_storage import LicenseStorage
from licensemanager.security.license_validator import (
    DualVerifier, OfflineVerifier, OnlineConfig, OnlineVerifier, verify_online
)
from licensemanager.token_auth import TokenType, create_token

EXPIRY = datetime(2026, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
BEFORE_EXPIRY = datetime(2026, 10, 19, 9, 0, 0, tzinfo=timezone.utc)

pytestmark = pytest.mark.integration


@pytest.fixture
def server_clock():
    return {"now": BEFORE_EXPIRY}


@pytest.fixture
def license_server(issuer_keys, server_clock):
    """License server with a license for device123, listening on a free port"""
    storage = LicenseStorage(":memory:")
    token = issue_license("device123", "dual", EXPIRY, ["export"],
                          issuer_keys.signing_key, issuer_keys.symmetric_key)
    storage.save_license(LicenseRecord(device_id="device123", license_key=token,
                                       license_type="dual", expiry_date=EXPIRY))

    app = create_app(storage, clock=lambda: server_clock["now"])
    server = ServerThread(app).start()
    base_url = f"{server.base_url}/api/v1"

    yield {"app": app, "storage": storage, "token": token, "base_url": base_url}

    server.stop()
    storage.close()


def online_config(license_server, **overrides):
    return OnlineConfig(api_url=license_server["base_url"], app_id="app", timeout=5, **overrides)


class TestOnlineVerification:
    def test_health_check(self, license_server):
        client = LicenseAPIClient(license_server["base_url"].replace("/v1", ""))
        response = client.health_check()
        client.close()

        assert response.success
        assert response.data["status"] == "ok"

    def test_verify_online(self, license_server):
        result = verify_online("device123", online_config(license_server))

        assert result.valid
        assert not result.expired
        assert result.expiry_date == EXPIRY
        assert result.license_type == "dual"

    def test_verify_online_expired(self, license_server, server_clock):
        server_clock["now"] = EXPIRY + timedelta(seconds=1)
        result = verify_online("device123", online_config(license_server))

        assert not result.valid
        assert result.expired

    def test_unknown_device_is_network_error(self, license_server):
        with pytest.raises(NetworkError):
            verify_online("device999", online_config(license_server))

    def test_server_down(self, license_server):
        config = OnlineConfig(api_url="http://127.0.0.1:9/api/v1", app_id="app", timeout=1)
        with pytest.raises(NetworkError):
            verify_online("device123", config)

    def test_register_and_fetch_device(self, license_server):
        client = LicenseAPIClient(license_server["base_url"])
        try:
            registered = client.register_device("device123", "laptop", "app")
            fetched = client.get_device("device123")
        finally:
            client.close()

        assert registered.status_code == 201
        assert fetched.data["license_status"] == "active"


class TestDualVerification:
    def _offline(self, keys, now=BEFORE_EXPIRY):
        return OfflineVerifier(keys.verification_key, keys.symmetric_key, clock=lambda: now)

    def test_dual_valid(self, license_server, issuer_keys):
        dual = DualVerifier(self._offline(issuer_keys), OnlineVerifier(online_config(license_server)))
        result = dual.verify(license_server["token"], "device123")

        assert result.valid
        assert result.offline_valid
        assert result.online_valid

    def test_dual_server_says_expired(self, license_server, issuer_keys, server_clock):
        server_clock["now"] = EXPIRY + timedelta(days=1)
        dual = DualVerifier(self._offline(issuer_keys), OnlineVerifier(online_config(license_server)))

        with pytest.raises(InvalidLicense) as info:
            dual.verify(license_server["token"], "device123")

        assert info.value.result.offline_valid is True
        assert info.value.result.online_valid is False

    def test_dual_wrong_offline_keys(self, license_server, other_keys):
        dual = DualVerifier(self._offline(other_keys), OnlineVerifier(online_config(license_server)))

        with pytest.raises(LicenseManagerError) as info:
            dual.verify(license_server["token"], "device123")

        assert info.value.result.valid is False
        assert info.value.result.offline_valid is False


class TestTokenProtectedServer:
    def test_bearer_token_required(self, license_server):
        license_server["app"].state.require_token = True
        record = create_token(license_server["storage"], TokenType.CLIENT, app_id="app")

        with pytest.raises(NetworkError):
            verify_online("device123", online_config(license_server))

        result = verify_online("device123", online_config(license_server, api_token=record.token))
        assert result.valid
