"""
Credential storage capability.

Hosts only carry a ``credential_key``. The store is injected into each
HostProvider at construction; nothing else reads secret bytes.
"""

from __future__ import annotations

import logging
import threading
from typing import Protocol, runtime_checkable

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

from forksync.core.errors import AuthError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "forksync"


@runtime_checkable
class CredentialStore(Protocol):
    """Secret store keyed by opaque secret ids."""

    def get(self, secret_id: str) -> bytes | None:
        """Return the secret, or None if nothing is stored under ``secret_id``."""
        ...

    def set(self, secret_id: str, secret: bytes) -> None:
        ...

    def delete(self, secret_id: str) -> None:
        """Remove a secret; deleting a missing secret is not an error."""
        ...


class KeyringCredentialStore:
    """CredentialStore backed by the OS keychain via ``keyring``."""

    def __init__(self, service: str = KEYRING_SERVICE) -> None:
        self.service = service

    def get(self, secret_id: str) -> bytes | None:
        try:
            value = keyring.get_password(self.service, secret_id)
        except KeyringError as e:
            raise AuthError(f"Could not read credential '{secret_id}': {e}") from e
        return value.encode("utf-8") if value is not None else None

    def set(self, secret_id: str, secret: bytes) -> None:
        try:
            keyring.set_password(self.service, secret_id, secret.decode("utf-8"))
        except KeyringError as e:
            raise AuthError(f"Could not store credential '{secret_id}': {e}") from e

    def delete(self, secret_id: str) -> None:
        try:
            keyring.delete_password(self.service, secret_id)
        except PasswordDeleteError:
            logger.debug("No credential stored for %s", secret_id)
        except KeyringError as e:
            raise AuthError(f"Could not delete credential '{secret_id}': {e}") from e


class MemoryCredentialStore:
    """In-process CredentialStore for tests and offline runs."""

    def __init__(self, secrets: dict[str, bytes] | None = None) -> None:
        self._secrets: dict[str, bytes] = dict(secrets or {})
        self._lock = threading.Lock()

    def get(self, secret_id: str) -> bytes | None:
        with self._lock:
            return self._secrets.get(secret_id)

    def set(self, secret_id: str, secret: bytes) -> None:
        with self._lock:
            self._secrets[secret_id] = secret

    def delete(self, secret_id: str) -> None:
        with self._lock:
            self._secrets.pop(secret_id, None)


def require_token(store: CredentialStore, secret_id: str) -> str:
    """
    Resolve a secret id to a token string.

    Raises:
        AuthError: If no credential is stored
    """
    secret = store.get(secret_id)
    if not secret:
        raise AuthError(f"No credential stored for '{secret_id}'", secret_id=secret_id)
    return secret.decode("utf-8").strip()
