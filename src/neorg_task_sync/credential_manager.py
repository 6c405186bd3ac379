"""Credential storage for the remote task store.

OAuth tokens and client secrets are kept in the system keyring. Environment
variables of the form ``NEORG_TASK_SYNC_GOOGLE_<KEY>`` take effect when the
keyring has no value, which is how CI and headless machines provide them.
"""

import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional, Union

import keyring
import keyring.errors
from keyring.backends import fail


logger = logging.getLogger(__name__)


ACCESS_TOKEN = "access_token"
REFRESH_TOKEN = "refresh_token"
CLIENT_ID = "client_id"
CLIENT_SECRET = "client_secret"

KNOWN_KEYS = [ACCESS_TOKEN, REFRESH_TOKEN, CLIENT_ID, CLIENT_SECRET]


class CredentialManager:
    """Secure credential storage using system keyring."""

    SERVICE_NAME = "neorg_task_sync"
    ENV_PREFIX = "NEORG_TASK_SYNC"

    def __init__(self, provider: str = "google"):
        self.provider = provider
        self.logger = logging.getLogger(__name__)
        self._keyring_available = not isinstance(keyring.get_keyring(), fail.Keyring)
        if not self._keyring_available:
            self.logger.warning("No keyring backend available, only environment variables are read")

    def _make_credential_key(self, key: str) -> str:
        return f"{self.provider}_{key}"

    def env_var(self, key: str) -> str:
        """Environment variable consulted for ``key``."""
        return f"{self.ENV_PREFIX}_{self.provider.upper()}_{key.upper()}"

    def store_credential(self, key: str, value: str) -> bool:
        """Store a credential in the keyring.

        Args:
            key: Credential key (e.g. 'access_token', 'client_id')
            value: Credential value

        Returns:
            True if stored successfully, False otherwise
        """
        if not self._keyring_available:
            self.logger.warning(
                f"Keyring not available. Provide the credential as environment variable "
                f"{self.env_var(key)} instead"
            )
            return False
        try:
            keyring.set_password(self.SERVICE_NAME, self._make_credential_key(key), value)
        except keyring.errors.KeyringError as e:
            self.logger.error(f"Failed to store credential {key}: {e}")
            return False
        self.logger.debug(f"Stored credential {key} for {self.provider} in keyring")
        return True

    def get_credential(self, key: str) -> Optional[str]:
        """Retrieve a credential from the keyring or the environment.

        Args:
            key: Credential key

        Returns:
            Credential value if found, None otherwise
        """
        if self._keyring_available:
            try:
                value = keyring.get_password(self.SERVICE_NAME, self._make_credential_key(key))
            except keyring.errors.KeyringError as e:
                self.logger.warning(f"Could not read {key} from keyring: {e}")
                value = None
            if value:
                return value

        value = os.getenv(self.env_var(key))
        if value:
            self.logger.debug(f"Retrieved credential {key} for {self.provider} from environment")
            return value
        return None

    def delete_credential(self, key: str) -> bool:
        """Delete a credential from the keyring.

        Returns:
            True if a stored value was deleted
        """
        if not self._keyring_available:
            return False
        try:
            keyring.delete_password(self.SERVICE_NAME, self._make_credential_key(key))
        except keyring.errors.PasswordDeleteError:
            self.logger.debug(f"Credential {key} not found in keyring")
            return False
        return True

    def list_stored_credentials(self) -> List[str]:
        """List known credential keys that currently have a value."""
        return [key for key in KNOWN_KEYS if self.get_credential(key)]

    def import_client_secret(self, path: Union[str, Path]) -> Dict[str, str]:
        """Store the client id and secret from a downloaded OAuth client file.

        Both the ``installed`` and ``web`` layouts of Google's
        ``client_secret.json`` are accepted.

        Returns:
            The stored values by key

        Raises:
            ValueError: If the file does not contain client credentials
        """
        with open(path, "r", encoding="utf-8") as handle:
            data = json.load(handle)

        section = data.get("installed") or data.get("web") or data
        client_id = section.get(CLIENT_ID)
        client_secret = section.get(CLIENT_SECRET)
        if not client_id or not client_secret:
            raise ValueError(f"{path}: no client_id/client_secret found")

        stored = {CLIENT_ID: client_id, CLIENT_SECRET: client_secret}
        for key, value in stored.items():
            self.store_credential(key, value)
        return stored

    def is_keyring_available(self) -> bool:
        return self._keyring_available
