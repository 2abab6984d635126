"""
Unit tests for key material management
"""

import os
import stat
import sys

import pytest

from licensemanager.core.config_manager import KeyPaths
from licensemanager.errors import ConfigurationError, InvalidKeyLength, KeyTypeMismatch
from licensemanager.key_manager import AES_KEY_FILE, KeyManager, KeyMaterial
from licensemanager.security.signing import encode_private_key, encode_public_key


@pytest.fixture
def key_dir(tmp_path, issuer_keys):
    """A key directory holding key set A"""
    (tmp_path / "private_key.pem").write_bytes(encode_private_key(issuer_keys.signing_key))
    (tmp_path / "public_key.pem").write_bytes(encode_public_key(issuer_keys.verification_key))
    (tmp_path / "aes_key.bin").write_bytes(issuer_keys.symmetric_key)
    return tmp_path


def paths_in(directory) -> KeyPaths:
    return KeyPaths(
        private_key=str(directory / "private_key.pem"),
        public_key=str(directory / "public_key.pem"),
        aes_key=str(directory / "aes_key.bin")
    )


class TestKeyManager:
    def test_load_verifier_keys(self, key_dir, issuer_keys):
        material = KeyManager(paths_in(key_dir)).load_verifier_keys()

        assert isinstance(material, KeyMaterial)
        assert material.signing_key is None
        assert not material.can_issue
        assert material.symmetric_key == issuer_keys.symmetric_key
        assert material.verification_key.public_numbers() == issuer_keys.verification_key.public_numbers()

    def test_load_issuer_keys(self, key_dir, issuer_keys):
        material = KeyManager(paths_in(key_dir)).load_issuer_keys()

        assert material.can_issue
        assert material.verification_key.public_numbers() == issuer_keys.verification_key.public_numbers()

    def test_relative_paths_resolved(self, key_dir):
        manager = KeyManager(KeyPaths(), resolve=lambda p: key_dir / os.path.basename(p))
        assert manager.load_verifier_keys().symmetric_key

    def test_missing_key_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            KeyManager(paths_in(tmp_path)).load_verifier_keys()

    def test_short_aes_key(self, key_dir):
        (key_dir / "aes_key.bin").write_bytes(b"short")
        with pytest.raises(InvalidKeyLength):
            KeyManager(paths_in(key_dir)).load_verifier_keys()

    def test_swapped_key_files(self, key_dir):
        paths = paths_in(key_dir)
        paths.public_key, paths.private_key = paths.private_key, paths.public_key
        with pytest.raises(KeyTypeMismatch):
            KeyManager(paths).load_verifier_keys()


class TestGenerateKeyFiles:
    def test_generate_key_files(self, tmp_path):
        paths = KeyManager.generate_key_files(tmp_path / "keys", key_size=2048)

        material = KeyManager(paths).load_issuer_keys()
        assert material.signing_key.key_size == 2048
        assert len(material.symmetric_key) == 32
        assert (tmp_path / "keys" / AES_KEY_FILE).exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_secret_files_owner_only(self, tmp_path):
        paths = KeyManager.generate_key_files(tmp_path, key_size=2048)
        for path in (paths.private_key, paths.aes_key):
            assert stat.S_IMODE(os.stat(path).st_mode) == 0o600

    def test_refuses_to_overwrite(self, tmp_path):
        KeyManager.generate_key_files(tmp_path, key_size=2048)
        with pytest.raises(ConfigurationError):
            KeyManager.generate_key_files(tmp_path, key_size=2048)

    def test_overwrite(self, tmp_path):
        first = KeyManager.generate_key_files(tmp_path, key_size=2048)
        old_key = (tmp_path / AES_KEY_FILE).read_bytes()

        second = KeyManager.generate_key_files(tmp_path, overwrite=True, key_size=2048)
        assert first == second
        assert (tmp_path / AES_KEY_FILE).read_bytes() != old_key
