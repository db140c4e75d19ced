"""Secret storage backends for bookmark credentials.

The OS credential store is preferred. Where it is missing or unusable,
secrets are encrypted with Fernet under a key derived from a
per-installation secret file readable only by its owner.
"""

import base64
import hashlib
import logging
import os
import secrets as token_source
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from cryptography.fernet import Fernet, InvalidToken

try:
    import keyring
    from keyring.errors import KeyringError
except Exception:  # pragma: no cover - import-time environment differences
    keyring = None
    KeyringError = Exception

logger = logging.getLogger(__name__)

KEYRING_SERVICE_NAME = "termxfer"
KEY_FILE_NAME = ".secret_key"
KEY_FILE_MODE = 0o600


class SecretUnavailable(Exception):
    """A stored secret cannot be recovered by this backend."""


class SecretStore(ABC):
    """Stores secrets and hands back a reference kept in the bookmark file."""

    scheme = ""

    def owns(self, ref: str) -> bool:
        """Check whether ``ref`` was produced by this backend."""
        return ref.startswith(f"{self.scheme}:")

    @abstractmethod
    def store(self, name: str, secret: str) -> str:
        """Save ``secret`` for bookmark ``name`` and return its reference."""

    @abstractmethod
    def retrieve(self, ref: str) -> str:
        """Recover a secret; raise ``SecretUnavailable`` on failure."""

    @abstractmethod
    def delete(self, ref: str) -> None:
        """Forget a secret; missing secrets are ignored."""


class KeyringSecretStore(SecretStore):
    """Secrets in the OS credential store; the reference is the account name."""

    scheme = "keyring"

    def __init__(self, backend=None, service: str = KEYRING_SERVICE_NAME) -> None:
        if backend is None and keyring is None:
            raise RuntimeError("keyring is not installed")
        self._backend = backend if backend is not None else keyring.get_keyring()
        self.service = service

    def store(self, name: str, secret: str) -> str:
        """Save the secret under the bookmark name."""
        self._backend.set_password(self.service, name, secret)
        return f"{self.scheme}:{name}"

    def retrieve(self, ref: str) -> str:
        """Look the secret up in the credential store."""
        if not self.owns(ref):
            raise SecretUnavailable(f"not a keyring reference: {ref.split(':', 1)[0]}")
        account = ref.split(":", 1)[1]
        try:
            value = self._backend.get_password(self.service, account)
        except KeyringError as exc:
            raise SecretUnavailable(f"credential store error: {exc}") from exc
        if value is None:
            raise SecretUnavailable("no entry in the credential store")
        return value

    def delete(self, ref: str) -> None:
        """Remove the credential store entry."""
        if not self.owns(ref):
            return
        try:
            self._backend.delete_password(self.service, ref.split(":", 1)[1])
        except KeyringError as exc:
            logger.debug("Nothing to delete for %s: %s", ref, exc)


def _derive_key(secret_key: str) -> bytes:
    """Derive a Fernet key from the installation secret using SHA-256."""
    digest = hashlib.sha256(secret_key.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def load_or_create_key_file(path: Path) -> str:
    """Read the installation secret, creating it with mode 0600 if missing."""
    if path.exists():
        return path.read_text().strip()
    path.parent.mkdir(parents=True, exist_ok=True)
    value = token_source.token_urlsafe(48)
    fd = os.open(str(path), os.O_WRONLY | os.O_CREAT | os.O_EXCL, KEY_FILE_MODE)
    with os.fdopen(fd, "w") as f:
        f.write(value)
    os.chmod(path, KEY_FILE_MODE)
    logger.info("Created secret key file %s", path)
    return value


class FernetSecretStore(SecretStore):
    """Secrets encrypted inline in the bookmark file."""

    scheme = "fernet"

    def __init__(self, key_file: Path) -> None:
        self.key_file = Path(key_file)
        self._fernet = Fernet(_derive_key(load_or_create_key_file(self.key_file)))

    def store(self, name: str, secret: str) -> str:
        """Encrypt the secret; the ciphertext is the reference."""
        token = self._fernet.encrypt(secret.encode()).decode()
        return f"{self.scheme}:{token}"

    def retrieve(self, ref: str) -> str:
        """Decrypt a reference produced by ``store``."""
        if not self.owns(ref):
            raise SecretUnavailable(f"not an encrypted reference: {ref.split(':', 1)[0]}")
        try:
            return self._fernet.decrypt(ref.split(":", 1)[1].encode()).decode()
        except InvalidToken as exc:
            raise SecretUnavailable("failed to decrypt credential data") from exc

    def delete(self, ref: str) -> None:
        """Nothing to do: the ciphertext lives in the bookmark entry."""


def keyring_usable(backend=None) -> bool:
    """Check that a real credential store backend is configured and answers."""
    if backend is None:
        if keyring is None:
            return False
        backend = keyring.get_keyring()
    try:
        from keyring.backends import fail
    except Exception:  # pragma: no cover - import-time environment differences
        return False
    if isinstance(backend, fail.Keyring):
        return False
    try:
        backend.get_password(KEYRING_SERVICE_NAME, "__probe__")
    except KeyringError as exc:
        logger.info("Credential store unusable: %s", exc)
        return False
    return True


def probe_secret_store(config_dir: Path, backend=None) -> SecretStore:
    """Pick the keyring backend when usable, else the encrypted file fallback."""
    if keyring_usable(backend):
        store = KeyringSecretStore(backend)
        logger.info("Using OS credential store for bookmark secrets")
        return store
    logger.info("OS credential store unavailable; encrypting secrets under %s", config_dir)
    return FernetSecretStore(Path(config_dir) / KEY_FILE_NAME)
