"""Persistent bookmarks and recent connections."""

import json
import logging
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional

from ..errors import CredentialLocked
from ..host.params import ConnectionProfile
from .models import Bookmark, profile_from_dict, profile_to_dict
from .secrets import SecretStore, SecretUnavailable

logger = logging.getLogger(__name__)

MAX_RECENTS = 16


class BookmarkStore:
    """Bookmarks keyed by name plus a bounded list of recent connections.

    Secrets never reach the bookmark file in clear text: the file keeps a
    reference produced by the active ``SecretStore``.
    """

    def __init__(self, path: Path, secret_store: SecretStore) -> None:
        self.path = Path(path)
        self.secret_store = secret_store
        self._bookmarks: Dict[str, Bookmark] = {}
        self._recents: "OrderedDict[str, ConnectionProfile]" = OrderedDict()

    def load(self) -> None:
        """Read the bookmark file; unrecoverable secrets lock their bookmark."""
        self._bookmarks = {}
        self._recents = OrderedDict()
        if not self.path.exists():
            return
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as exc:
            logger.error("Could not read bookmarks from %s: %s", self.path, exc)
            return
        if not isinstance(data, dict):
            logger.error("Ignoring malformed bookmark file %s", self.path)
            return

        for name, raw in self._section(data, "bookmarks").items():
            try:
                bookmark = Bookmark.from_dict(name, raw)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed bookmark %r: %s", name, exc)
                continue
            if bookmark.secret_ref is not None:
                try:
                    self.secret_store.retrieve(bookmark.secret_ref)
                except SecretUnavailable as exc:
                    bookmark.locked = True
                    logger.warning("Bookmark %r is locked: %s", name, exc)
            self._bookmarks[name] = bookmark

        for name, raw in self._section(data, "recents").items():
            try:
                self._recents[name] = profile_from_dict(raw)
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping malformed recent %r: %s", name, exc)
        logger.debug("Loaded %d bookmarks from %s", len(self._bookmarks), self.path)

    def _section(self, data: Dict, key: str) -> Dict:
        section = data.get(key) or {}
        if not isinstance(section, dict):
            logger.warning("Ignoring malformed %r section in %s", key, self.path)
            return {}
        return section

    def save(self) -> None:
        """Write the bookmark file."""
        data = {
            "bookmarks": {name: b.to_dict() for name, b in sorted(self._bookmarks.items())},
            "recents": {name: profile_to_dict(p) for name, p in self._recents.items()},
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(data, f, indent=2)

    # -- bookmarks

    def names(self) -> List[str]:
        """Get bookmark names in alphabetical order."""
        return sorted(self._bookmarks)

    def get(self, name: str) -> Bookmark:
        """Get a bookmark; raise KeyError when unknown."""
        return self._bookmarks[name]

    def __contains__(self, name: str) -> bool:
        return name in self._bookmarks

    def add_bookmark(self, name: str, profile: ConnectionProfile, save_secret: bool = True) -> Bookmark:
        """Create or replace a bookmark and persist it."""
        name = name.strip()
        if not name:
            raise ValueError("Bookmark name must not be empty")
        previous = self._bookmarks.get(name)
        if previous is not None and previous.secret_ref is not None:
            self.secret_store.delete(previous.secret_ref)

        secret_ref = None
        if save_secret and profile.secret:
            secret_ref = self.secret_store.store(name, profile.secret)
        bookmark = Bookmark(name=name, profile=profile.without_secret(), secret_ref=secret_ref)
        self._bookmarks[name] = bookmark
        self.save()
        logger.info("Saved bookmark %r", name)
        return bookmark

    def delete_bookmark(self, name: str) -> None:
        """Delete a bookmark and its secret."""
        bookmark = self._bookmarks.pop(name)
        if bookmark.secret_ref is not None:
            self.secret_store.delete(bookmark.secret_ref)
        self.save()
        logger.info("Deleted bookmark %r", name)

    def retrieve_secret(self, name: str) -> Optional[str]:
        """Get the saved secret of a bookmark (None if none was saved)."""
        bookmark = self.get(name)
        if bookmark.secret_ref is None:
            return None
        if bookmark.locked:
            raise CredentialLocked(name, "secret could not be recovered on load")
        try:
            return self.secret_store.retrieve(bookmark.secret_ref)
        except SecretUnavailable as exc:
            bookmark.locked = True
            raise CredentialLocked(name, str(exc)) from exc

    def profile_for(self, name: str) -> ConnectionProfile:
        """Get a connectable profile; raise ``CredentialLocked`` for locked bookmarks."""
        bookmark = self.get(name)
        profile = bookmark.profile.without_secret()
        profile.secret = self.retrieve_secret(name)
        return profile

    def unlock(self, name: str, secret: str) -> None:
        """Replace the secret of a locked bookmark with one entered by the user."""
        bookmark = self.get(name)
        bookmark.secret_ref = self.secret_store.store(name, secret)
        bookmark.locked = False
        self.save()

    # -- recents

    def add_recent(self, profile: ConnectionProfile) -> str:
        """Record a connection (without its secret) as the most recent one."""
        key = profile.display_address
        self._recents.pop(key, None)
        self._recents[key] = profile.without_secret()
        while len(self._recents) > MAX_RECENTS:
            evicted, _ = self._recents.popitem(last=False)
            logger.debug("Evicted recent connection %s", evicted)
        self.save()
        return key

    def recents(self) -> List[ConnectionProfile]:
        """Get recent connections, most recent first."""
        return list(reversed(self._recents.values()))
