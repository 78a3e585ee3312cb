"""Tests for pairing credential storage."""

from unittest.mock import patch

from keyring.errors import KeyringError, PasswordDeleteError

from plungeheat.credentials import (
    ACCOUNT_NAME,
    SERVICE_NAME,
    PairingCredentials,
    PairingStore,
)


class TestPairingStore:
    """Tests for PairingStore with the keyring backend mocked out."""

    def setup_method(self):
        self.store = PairingStore()
        self.credentials = PairingCredentials(
            token="pair-token", device_id="phone-1", peer_device_id="watch-1"
        )

    @patch("plungeheat.credentials.keyring")
    def test_store(self, mock_keyring):
        assert self.store.store(self.credentials) is True

        mock_keyring.set_password.assert_called_once_with(
            SERVICE_NAME, ACCOUNT_NAME, self.credentials.to_json()
        )

    @patch("plungeheat.credentials.keyring")
    def test_store_failure(self, mock_keyring):
        mock_keyring.set_password.side_effect = KeyringError("locked")

        assert self.store.store(self.credentials) is False

    @patch("plungeheat.credentials.keyring")
    def test_load(self, mock_keyring):
        mock_keyring.get_password.return_value = self.credentials.to_json()

        assert self.store.load() == self.credentials
        assert self.store.is_paired()

    @patch("plungeheat.credentials.keyring")
    def test_load_missing(self, mock_keyring):
        mock_keyring.get_password.return_value = None

        assert self.store.load() is None
        assert not self.store.is_paired()

    @patch("plungeheat.credentials.keyring")
    def test_load_invalid_format(self, mock_keyring):
        mock_keyring.get_password.return_value = '{"token": "only"}'

        assert self.store.load() is None

    @patch("plungeheat.credentials.keyring")
    def test_load_failure(self, mock_keyring):
        mock_keyring.get_password.side_effect = KeyringError("no backend")

        assert self.store.load() is None

    @patch("plungeheat.credentials.keyring")
    def test_delete(self, mock_keyring):
        assert self.store.delete() is True
        mock_keyring.delete_password.assert_called_once_with(SERVICE_NAME, ACCOUNT_NAME)

    @patch("plungeheat.credentials.keyring")
    def test_delete_when_not_stored(self, mock_keyring):
        mock_keyring.delete_password.side_effect = PasswordDeleteError("missing")

        assert self.store.delete() is True

    @patch("plungeheat.credentials.keyring")
    def test_delete_failure(self, mock_keyring):
        mock_keyring.delete_password.side_effect = KeyringError("locked")

        assert self.store.delete() is False

    def test_credentials_without_peer(self):
        parsed = PairingCredentials.from_json('{"token": "t", "device_id": "d"}')

        assert parsed.peer_device_id is None
