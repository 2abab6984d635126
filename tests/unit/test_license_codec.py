"""
Test suite for the license token codec

Tests cover:
- Encode/decode round trip
- Tamper sensitivity of the token text
- Independence of the RSA and AES keys
- Signature checked before decryption
- Malformed input
"""

import base64
import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from licensemanager.errors import InvalidKeyFormat, InvalidLicense, LicenseNotFound, MalformedToken
from licensemanager.license_codec import (
    SIGNATURE_SIZE, decode_license, encode_license, issue_license, load_license_from_file,
    normalize_token, serialize_license
)
from licensemanager.license_models import License, LicenseType
from licensemanager.security.crypto_layer import encrypt_aes
from licensemanager.security.signing import sign_data

EXPIRY = datetime(2026, 12, 31, 23, 59, 59, tzinfo=timezone.utc)
CREATED = datetime(2026, 1, 15, 8, 30, 0, 123456, tzinfo=timezone.utc)


@pytest.fixture
def license():
    return License(
        device_id="device123",
        expiry_date=EXPIRY,
        license_type=LicenseType.OFFLINE,
        features=["export", "sync"],
        created_at=CREATED
    )


@pytest.fixture
def token(license, issuer_keys):
    return encode_license(license, issuer_keys.signing_key, issuer_keys.symmetric_key)


def _raw_token(sealed: bytes, keys) -> str:
    return base64.b64encode(sign_data(sealed, keys.signing_key) + sealed).decode("ascii")


class TestRoundTrip:
    """Test cases for encode_license / decode_license"""

    def test_round_trip(self, license, token, issuer_keys):
        decoded = decode_license(token, issuer_keys.verification_key, issuer_keys.symmetric_key)
        assert decoded == license

    def test_token_layout(self, token):
        raw = base64.b64decode(token)
        # signature, nonce, at least the tag
        assert len(raw) >= SIGNATURE_SIZE + 12 + 16

    def test_tokens_differ_per_encoding(self, license, issuer_keys):
        first = encode_license(license, issuer_keys.signing_key, issuer_keys.symmetric_key)
        second = encode_license(license, issuer_keys.signing_key, issuer_keys.symmetric_key)
        assert first != second

    def test_empty_features(self, issuer_keys):
        license = License("device123", EXPIRY, LicenseType.DUAL, features=[], created_at=CREATED)
        token = encode_license(license, issuer_keys.signing_key, issuer_keys.symmetric_key)

        decoded = decode_license(token, issuer_keys.verification_key, issuer_keys.symmetric_key)
        assert decoded.features == []
        assert decoded.license_type == LicenseType.DUAL

    def test_serialized_field_order(self, license):
        payload = json.loads(serialize_license(license))
        assert list(payload) == ["device_id", "expiry_date", "license_type", "features", "created_at"]
        assert payload["expiry_date"] == "2026-12-31T23:59:59.000000+00:00"
        assert payload["created_at"] == "2026-01-15T08:30:00.123456+00:00"


class TestTamper:
    """Any change to the token text must be rejected"""

    @pytest.mark.parametrize("position", [0, 10, 600, 700, -5, -1])
    def test_single_character_change(self, token, issuer_keys, position):
        index = position % len(token)
        if token[index] == "=":
            index -= 1
        replacement = "A" if token[index] != "A" else "B"
        tampered = token[:index] + replacement + token[index + 1:]

        with pytest.raises((InvalidLicense, MalformedToken)):
            decode_license(tampered, issuer_keys.verification_key, issuer_keys.symmetric_key)

    def test_truncated_token(self, token, issuer_keys):
        with pytest.raises((InvalidLicense, MalformedToken)):
            decode_license(token[:-4], issuer_keys.verification_key, issuer_keys.symmetric_key)

    def test_appended_bytes(self, token, issuer_keys):
        raw = base64.b64decode(token) + b"\x00"
        extended = base64.b64encode(raw).decode("ascii")
        with pytest.raises(InvalidLicense):
            decode_license(extended, issuer_keys.verification_key, issuer_keys.symmetric_key)


class TestKeyIndependence:
    def test_wrong_verification_key(self, token, issuer_keys, other_keys):
        with pytest.raises(InvalidLicense):
            decode_license(token, other_keys.verification_key, issuer_keys.symmetric_key)

    def test_wrong_symmetric_key(self, token, issuer_keys, other_keys):
        with pytest.raises(InvalidLicense):
            decode_license(token, issuer_keys.verification_key, other_keys.symmetric_key)

    def test_both_keys_wrong(self, token, other_keys):
        with pytest.raises(InvalidLicense):
            decode_license(token, other_keys.verification_key, other_keys.symmetric_key)


class TestDecodeOrder:
    def test_signature_checked_before_decryption(self, token, issuer_keys, other_keys):
        with patch("licensemanager.license_codec.decrypt_aes") as mock_decrypt:
            with pytest.raises(InvalidLicense):
                decode_license(token, other_keys.verification_key, issuer_keys.symmetric_key)
            mock_decrypt.assert_not_called()

    def test_signed_garbage_ciphertext(self, issuer_keys):
        """A correctly signed box that fails authentication is still invalid"""
        token = _raw_token(b"\x01" * 64, issuer_keys)
        with pytest.raises(InvalidLicense):
            decode_license(token, issuer_keys.verification_key, issuer_keys.symmetric_key)

    def test_signed_non_license_payload(self, issuer_keys):
        sealed = encrypt_aes(b'{"hello": "world"}', issuer_keys.symmetric_key)
        with pytest.raises(InvalidLicense):
            decode_license(_raw_token(sealed, issuer_keys), issuer_keys.verification_key,
                           issuer_keys.symmetric_key)

    def test_signed_non_json_payload(self, issuer_keys):
        sealed = encrypt_aes(b"\xff\xfe not json", issuer_keys.symmetric_key)
        with pytest.raises(InvalidLicense):
            decode_license(_raw_token(sealed, issuer_keys), issuer_keys.verification_key,
                           issuer_keys.symmetric_key)


class TestMalformed:
    @pytest.mark.parametrize("text", ["", "not base64!", "QQ==", "QR==", "AAAA\n"])
    def test_malformed_text(self, text, issuer_keys):
        with pytest.raises(MalformedToken):
            decode_license(text, issuer_keys.verification_key, issuer_keys.symmetric_key)

    def test_short_token(self, issuer_keys):
        short = base64.b64encode(b"\x00" * (SIGNATURE_SIZE - 1)).decode("ascii")
        with pytest.raises(MalformedToken):
            decode_license(short, issuer_keys.verification_key, issuer_keys.symmetric_key)

    def test_signing_key_size_enforced(self, license, issuer_keys):
        small_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        with pytest.raises(InvalidKeyFormat):
            encode_license(license, small_key, issuer_keys.symmetric_key)


class TestIssueAndLoad:
    def test_issue_license(self, issuer_keys):
        token = issue_license(
            device_id="device123",
            license_type="online",
            expiry_date=EXPIRY,
            features=None,
            signing_key=issuer_keys.signing_key,
            symmetric_key=issuer_keys.symmetric_key,
            created_at=CREATED
        )

        decoded = decode_license(token, issuer_keys.verification_key, issuer_keys.symmetric_key)
        assert decoded.license_type == LicenseType.ONLINE
        assert decoded.device_id == "device123"
        assert decoded.features == []
        assert decoded.created_at == CREATED

    def test_issue_defaults_created_at(self, issuer_keys):
        before = datetime.now(timezone.utc)
        token = issue_license("device123", LicenseType.OFFLINE, EXPIRY, [],
                              issuer_keys.signing_key, issuer_keys.symmetric_key)
        decoded = decode_license(token, issuer_keys.verification_key, issuer_keys.symmetric_key)
        assert decoded.created_at >= before

    def test_load_license_strips_whitespace(self, token, tmp_path):
        wrapped = "\n".join(token[i:i + 64] for i in range(0, len(token), 64))
        path = tmp_path / "license.lic"
        path.write_text(f"  {wrapped}\r\n\n", encoding="utf-8")

        assert load_license_from_file(path) == token

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(LicenseNotFound):
            load_license_from_file(tmp_path / "missing.lic")

    def test_normalize_token(self):
        assert normalize_token(" ab\ncd\t==\r\n") == "abcd=="
