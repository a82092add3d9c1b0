"""Tests for the AES-256-GCM credential vault."""

import base64

import pytest
from payments.errors import ConfigurationError, VaultError
from payments.security.vault import CredentialVault, generate_key

KEY = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"


@pytest.fixture()
def vault():
    return CredentialVault(KEY)


class TestKeyHandling:
    @pytest.mark.parametrize("key", ["", None])
    def test_missing_key_is_fatal(self, key):
        with pytest.raises(ConfigurationError):
            CredentialVault(key)

    @pytest.mark.parametrize("key", ["abc", KEY[:-2], KEY + "00", "zz" * 32])
    def test_malformed_key_is_fatal(self, key):
        with pytest.raises(ConfigurationError):
            CredentialVault(key)

    def test_generated_key_is_usable(self):
        key = generate_key()
        assert len(key) == 64
        assert CredentialVault(key).decrypt(CredentialVault(key).encrypt("x")) == "x"


class TestEncryption:
    def test_round_trip(self, vault):
        assert vault.decrypt(vault.encrypt("BSB 062-000 / 12345678")) == "BSB 062-000 / 12345678"

    def test_fresh_iv_per_call(self, vault):
        assert vault.encrypt("same") != vault.encrypt("same")

    def test_layout_is_iv_tag_ciphertext(self, vault):
        raw = base64.b64decode(vault.encrypt("abcd"))
        assert len(raw) == 16 + 16 + 4

    def test_tampered_ciphertext_detected(self, vault):
        raw = bytearray(base64.b64decode(vault.encrypt("secret")))
        raw[-1] ^= 0x01
        with pytest.raises(VaultError):
            vault.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_tampered_tag_detected(self, vault):
        raw = bytearray(base64.b64decode(vault.encrypt("secret")))
        raw[20] ^= 0x01
        with pytest.raises(VaultError):
            vault.decrypt(base64.b64encode(bytes(raw)).decode())

    def test_wrong_key_detected(self, vault):
        token = vault.encrypt("secret")
        with pytest.raises(VaultError):
            CredentialVault(generate_key()).decrypt(token)

    @pytest.mark.parametrize("token", ["not base64!!", base64.b64encode(b"short").decode()])
    def test_garbage_input(self, vault, token):
        with pytest.raises(VaultError):
            vault.decrypt(token)


class TestStructuredValues:
    def test_json_round_trip(self, vault):
        data = {"bsb": "062-000", "accountNumber": "12345678", "amount": 500.0}
        assert vault.decrypt_json(vault.encrypt_json(data)) == data

    def test_credentials_round_trip(self, vault):
        creds = {"apiKey": "sk_live_x"}
        assert vault.decrypt_credentials(vault.encrypt_credentials(creds)) == creds

    def test_empty_credentials_rejected(self, vault):
        with pytest.raises(VaultError):
            vault.encrypt_credentials({})
        with pytest.raises(VaultError):
            vault.decrypt_credentials("")

    def test_non_json_plaintext(self, vault):
        with pytest.raises(VaultError):
            vault.decrypt_json(vault.encrypt("not json"))

    def test_is_encrypted(self, vault):
        assert CredentialVault.is_encrypted(vault.encrypt("BSB 062-000 account 12345678"))
        assert not CredentialVault.is_encrypted("hello world")
        assert not CredentialVault.is_encrypted("")
