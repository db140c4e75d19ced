from .models import Bookmark
from .secrets import FernetSecretStore, KeyringSecretStore, SecretStore, probe_secret_store
from .store import BookmarkStore

__all__ = [
    "Bookmark",
    "BookmarkStore",
    "FernetSecretStore",
    "KeyringSecretStore",
    "SecretStore",
    "probe_secret_store",
]
