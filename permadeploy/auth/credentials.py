"""Keyring-backed deploy key storage."""

import logging
from typing import Optional

import keyring
import keyring.errors

log = logging.getLogger(__name__)

KEYRING_SERVICE = "Permaweb-Deploy"


def _key_name(sig_type: str) -> str:
    return f"deploy-key:{sig_type}"


class CredentialsStore:
    """
    Stores one deploy key per signature type in the OS keyring (Windows Credential
    Manager, macOS Keychain, Linux Secret Service). Used as the last fallback when no
    wallet, private key or DEPLOY_KEY is given.
    """

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        self._service = service

    def get_stored(self, sig_type: str) -> Optional[str]:
        """
        Return the stored deploy key for sig_type, or None.
        On keyring errors (no backend, corrupted entry) returns None so the caller can
        report a missing key instead of crashing.
        """
        try:
            key = keyring.get_password(self._service, _key_name(sig_type))
        except Exception as e:
            log.warning("Could not read stored deploy key: %s", e)
            return None
        return key or None

    def set_stored(self, sig_type: str, deploy_key: str) -> None:
        """Store the deploy key for sig_type."""
        keyring.set_password(self._service, _key_name(sig_type), deploy_key)
        log.debug("Stored deploy key for %s in keyring", sig_type)

    def clear_stored(self, sig_type: str) -> None:
        """Remove the stored deploy key for sig_type (no error if absent)."""
        try:
            keyring.delete_password(self._service, _key_name(sig_type))
        except keyring.errors.PasswordDeleteError:
            pass
