"""Synchronized browsing: the remote pane follows local navigation."""

import logging
from typing import Optional, Tuple

from ..errors import HostError, NotFoundError
from ..explorer.session import ExplorerSession

logger = logging.getLogger(__name__)


class SyncBrowser:
    """Mirrors local directory changes onto the remote explorer.

    Both panes' directories at ``enable()`` time become the roots; a local
    path is mapped to the remote one through its path relative to the local
    root. Failing to follow decouples the panes and never fails the local
    navigation.
    """

    def __init__(self, local: ExplorerSession, remote: ExplorerSession) -> None:
        self.local = local
        self.remote = remote
        self.enabled = False
        self.local_root: Optional[str] = None
        self.remote_root: Optional[str] = None
        self.pending_directory: Optional[str] = None

    def enable(self) -> None:
        """Start synchronizing, taking the current directories as roots."""
        self.local_root = self.local.cwd
        self.remote_root = self.remote.cwd
        self.pending_directory = None
        self.enabled = True
        logger.info("Synchronized browsing on: %s <-> %s", self.local_root, self.remote_root)

    def disable(self) -> None:
        """Stop synchronizing."""
        self.enabled = False
        self.pending_directory = None
        logger.info("Synchronized browsing off")

    def toggle(self) -> bool:
        """Flip synchronization and return the new state."""
        if self.enabled:
            self.disable()
        else:
            self.enable()
        return self.enabled

    def remote_path_for(self, local_path: str) -> Optional[str]:
        """Map a local path onto the remote tree, or None if outside the root."""
        if self.local_root is None or self.remote_root is None:
            return None
        relative = self.local.bridge.relative_to(local_path, self.local_root)
        if relative is None:
            return None
        if not relative:
            return self.remote_root
        return self.remote.bridge.absolute(relative, self.remote_root)

    def navigate_local(self, path: str) -> Optional[str]:
        """Enter a local directory, then follow it; return any warning."""
        self.local.enter_directory(path)
        return self.follow()

    def follow(self, local_path: Optional[str] = None) -> Optional[str]:
        """Enter the remote counterpart of ``local_path`` (default: local cwd).

        Returns a warning message when the panes got decoupled.
        """
        target, warning = self.follow_target(local_path)
        if target is None:
            return warning
        try:
            self.remote.enter_directory(target)
        except HostError as exc:
            return self.follow_failed(target, exc)
        return None

    def follow_target(self, local_path: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
        """Plan following ``local_path``: the remote directory to enter and a warning.

        Both are None when there is nothing to do. A local path outside the
        root decouples right away.
        """
        if not self.enabled:
            return None, None
        local_path = local_path or self.local.cwd
        target = self.remote_path_for(local_path)
        if target is None:
            return None, self._decouple(
                f"{local_path} is outside the synchronized root {self.local_root}"
            )
        if target == self.remote.cwd:
            return None, None
        return target, None

    def follow_failed(self, target: str, exc: HostError) -> str:
        """Decouple after the remote pane could not enter ``target``."""
        if isinstance(exc, NotFoundError):
            self.pending_directory = target
            return self._decouple(f"Remote directory {target} does not exist")
        return self._decouple(f"Cannot enter remote directory {target}: {exc}")

    def create_pending_directory(self) -> str:
        """Create the missing remote directory, enter it and re-couple."""
        if self.pending_directory is None:
            raise NotFoundError("No remote directory is pending creation")
        target = self.pending_directory
        self.create_remote_dirs(target)
        self.remote.enter_directory(target)
        self.recouple()
        return target

    def create_remote_dirs(self, target: str) -> None:
        """Create ``target`` and its missing parents on the remote bridge."""
        for path in self.remote.bridge.create_dirs(target):
            logger.info("Created remote directory %s", path)

    def recouple(self) -> None:
        """Resume synchronizing once the pending directory exists."""
        self.pending_directory = None
        self.enabled = True

    def _decouple(self, reason: str) -> str:
        self.enabled = False
        message = f"Synchronized browsing disabled: {reason}"
        logger.warning(message)
        return message
