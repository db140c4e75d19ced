"""Expand selected entries into an ordered transfer queue."""

import fnmatch
import logging
from dataclasses import replace
from typing import Iterable, List, Optional, Set

from ..errors import HostError, NotFoundError, PermissionDeniedError
from ..host.base import HostBridge
from ..host.models import Entry
from .models import (
    TaskKind,
    TransferDirection,
    TransferOptions,
    TransferQueue,
    TransferTask,
)

logger = logging.getLogger(__name__)


def matches_any(relative_path: str, name: str, patterns: Iterable[str]) -> bool:
    """Check a relative path (or its final name) against glob patterns."""
    for pattern in patterns:
        if fnmatch.fnmatchcase(relative_path, pattern) or fnmatch.fnmatchcase(name, pattern):
            return True
    return False


class TreeWalker:
    """Builds a queue where every directory creation precedes every file copy.

    Both groups are in depth-first preorder with children visited in name
    order. Directory identities are resolved through the source bridge so a
    symlink loop is entered once and reported once.
    """

    def __init__(
        self,
        source: HostBridge,
        destination: HostBridge,
        direction: TransferDirection,
        options: Optional[TransferOptions] = None,
    ) -> None:
        self.source = source
        self.destination = destination
        self.direction = direction
        self.options = options or TransferOptions()
        self._visited: Set[str] = set()
        self._reported: Set[str] = set()
        self._mkdirs: List[TransferTask] = []
        self._files: List[TransferTask] = []
        self._queue = TransferQueue()

    def walk(self, entries: List[Entry], destination_dir: str) -> TransferQueue:
        """Walk the selected entries into a queue targeting ``destination_dir``."""
        for entry in sorted(entries, key=lambda x: x.name):
            self._visit(entry, destination_dir, entry.name)
        self._queue.tasks = self._mkdirs + self._files
        logger.info(
            "Queued %d directories and %d files (%d bytes) for %s",
            len(self._mkdirs),
            len(self._files),
            self._queue.total_size,
            destination_dir,
        )
        return self._queue

    def _visit(self, entry: Entry, destination_dir: str, relative_path: str) -> None:
        if matches_any(relative_path, entry.name, self.options.exclude):
            logger.debug("Excluded %s", relative_path)
            return

        followed = entry.is_symlink
        if entry.is_symlink:
            target = self._follow(entry)
            if target is None:
                return
            entry = target

        destination = self.destination.join(destination_dir, entry.name)
        if entry.is_dir:
            self._visit_directory(entry, destination, relative_path)
            return

        if self.options.include and not matches_any(
            relative_path, entry.name, self.options.include
        ):
            return
        if not followed:
            entry = self._sized(entry)
            if entry is None:
                return
        self._files.append(
            TransferTask(
                source=entry,
                destination=destination,
                direction=self.direction,
                kind=TaskKind.FILE,
                size=entry.size,
            )
        )

    def _sized(self, entry: Entry) -> Optional[Entry]:
        """Stat a file so the queue total reflects its current size."""
        try:
            current = self.source.stat(entry.path)
        except (NotFoundError, PermissionDeniedError) as exc:
            self._unreadable(entry.path, exc)
            return None
        return replace(current, path=entry.path, name=entry.name)

    def _unreadable(self, path: str, exc: HostError) -> None:
        logger.warning("Skipping unreadable %s: %s", path, exc)
        self._queue.unreadable.append(path)

    def _follow(self, link: Entry) -> Optional[Entry]:
        if not self.options.follow_symlinks:
            logger.info("Skipping symbolic link %s", link.path)
            self._queue.skipped_symlinks.append(link.path)
            return None
        try:
            target = self.source.stat(link.path)
        except HostError as exc:
            logger.warning("Skipping broken symbolic link %s: %s", link.path, exc)
            self._queue.skipped_symlinks.append(link.path)
            return None
        return replace(target, path=link.path, name=link.name)

    def _visit_directory(self, entry: Entry, destination: str, relative_path: str) -> None:
        identity = self.source.resolve(entry.path)
        if identity in self._visited:
            if identity not in self._reported:
                self._reported.add(identity)
                self._queue.cycles.append(entry.path)
                logger.warning("Symbolic link cycle at %s; not entering it again", entry.path)
            return
        self._visited.add(identity)

        self._mkdirs.append(
            TransferTask(
                source=entry,
                destination=destination,
                direction=self.direction,
                kind=TaskKind.MKDIR,
            )
        )
        try:
            children = self.source.list_dir(entry.path)
        except (NotFoundError, PermissionDeniedError) as exc:
            self._unreadable(entry.path, exc)
            return
        for child in children:
            self._visit(child, destination, f"{relative_path}/{child.name}")


def build_queue(
    source: HostBridge,
    destination: HostBridge,
    entries: List[Entry],
    destination_dir: str,
    direction: TransferDirection,
    options: Optional[TransferOptions] = None,
) -> TransferQueue:
    """Expand ``entries`` from ``source`` into a queue for ``destination``."""
    return TreeWalker(source, destination, direction, options).walk(entries, destination_dir)
