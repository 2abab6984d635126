"""
Test suite for API token issuance and validation
"""

import base64
from datetime import datetime, timedelta, timezone

import pytest

from licensemanager.license_models import TokenRecord
from licensemanager.license_storage import LicenseStorage
from licensemanager.token_auth import (
    TokenType, authorize_request, create_token, generate_token, lookup_token, token_expiry,
    validate_token
)

NOW = datetime(2026, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def storage():
    storage = LicenseStorage(":memory:")
    yield storage
    storage.close()


class TestTokenGeneration:
    def test_generate_token(self):
        token = generate_token()

        assert len(base64.urlsafe_b64decode(token)) == 32
        assert "+" not in token and "/" not in token
        assert token != generate_token()

    def test_generate_token_length(self):
        assert len(base64.urlsafe_b64decode(generate_token(16))) == 16
        with pytest.raises(ValueError):
            generate_token(0)

    def test_token_expiry_days(self):
        assert token_expiry(30, now=NOW) == NOW + timedelta(days=30)

    def test_token_expiry_never(self):
        assert token_expiry(0, now=NOW) == NOW.replace(year=2126)

    def test_token_expiry_leap_day(self):
        leap = datetime(2000, 2, 29, tzinfo=timezone.utc)
        assert token_expiry(0, now=leap) == datetime(2100, 2, 28, tzinfo=timezone.utc)

    def test_token_expiry_negative(self):
        with pytest.raises(ValueError):
            token_expiry(-1)


class TestValidateToken:
    def _save(self, storage, token="tok", token_type="client", app_id="app", expires_at=None):
        storage.save_token(TokenRecord(token=token, token_type=token_type, app_id=app_id,
                                       expires_at=expires_at))

    def test_valid_client_token(self, storage):
        self._save(storage, expires_at=NOW + timedelta(days=1))
        assert validate_token(storage, "tok", TokenType.CLIENT, app_id="app", now=NOW)

    def test_unknown_token(self, storage):
        assert not validate_token(storage, "nope", TokenType.CLIENT, app_id="app", now=NOW)
        assert not validate_token(storage, "", TokenType.CLIENT, now=NOW)

    def test_revoked_token(self, storage):
        self._save(storage)
        storage.revoke_token("tok")
        assert not validate_token(storage, "tok", TokenType.CLIENT, app_id="app", now=NOW)

    def test_expired_token(self, storage):
        self._save(storage, expires_at=NOW)
        assert validate_token(storage, "tok", TokenType.CLIENT, app_id="app", now=NOW)
        assert not validate_token(storage, "tok", TokenType.CLIENT, app_id="app",
                                  now=NOW + timedelta(seconds=1))

    def test_wrong_type(self, storage):
        self._save(storage, token_type="client")
        assert not validate_token(storage, "tok", TokenType.ADMIN, now=NOW)

    def test_wrong_app_id(self, storage):
        self._save(storage)
        assert not validate_token(storage, "tok", TokenType.CLIENT, app_id="other", now=NOW)

    def test_admin_token_ignores_app_id(self, storage):
        self._save(storage, token_type="admin", app_id="")
        assert validate_token(storage, "tok", TokenType.ADMIN, app_id="any", now=NOW)

    def test_create_token(self, storage):
        record = create_token(storage, TokenType.CLIENT, app_id="app", days=7)

        assert record.id is not None
        assert validate_token(storage, record.token, "client", app_id="app")
        assert storage.get_token(record.token).expires_at == record.expires_at

    def test_client_token_requires_app_id(self, storage):
        with pytest.raises(ValueError):
            create_token(storage, TokenType.CLIENT)

    def test_client_token_without_app_id(self, storage):
        self._save(storage)
        assert not validate_token(storage, "tok", TokenType.CLIENT, now=NOW)
        assert not validate_token(storage, "tok", TokenType.CLIENT, app_id="", now=NOW)


class TestAuthorizeRequest:
    def _save(self, storage, token, token_type, app_id=""):
        storage.save_token(TokenRecord(token=token, token_type=token_type, app_id=app_id))

    def test_lookup_token(self, storage):
        self._save(storage, "tok", "client", "app")

        assert lookup_token(storage, "tok", now=NOW).app_id == "app"
        assert lookup_token(storage, "missing", now=NOW) is None
        assert lookup_token(storage, "", now=NOW) is None

    def test_admin_token_any_request(self, storage):
        self._save(storage, "admin-tok", "admin")

        assert authorize_request(storage, "admin-tok", app_id="app", now=NOW).token_type == "admin"
        assert authorize_request(storage, "admin-tok", now=NOW) is not None

    def test_client_token_needs_matching_app(self, storage):
        self._save(storage, "client-tok", "client", "app")

        assert authorize_request(storage, "client-tok", app_id="app", now=NOW) is not None
        assert authorize_request(storage, "client-tok", app_id="other", now=NOW) is None
        assert authorize_request(storage, "client-tok", now=NOW) is None

    def test_valid_client_request_logs_no_warning(self, storage, caplog):
        self._save(storage, "client-tok", "client", "app")

        with caplog.at_level("WARNING", logger="licensemanager.token_auth"):
            assert authorize_request(storage, "client-tok", app_id="app", now=NOW) is not None
        assert caplog.records == []

    def test_revoked_token_rejected(self, storage):
        self._save(storage, "admin-tok", "admin")
        storage.revoke_token("admin-tok")
        assert authorize_request(storage, "admin-tok", now=NOW) is None
