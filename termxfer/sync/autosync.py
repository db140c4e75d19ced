"""Push locally saved files to the mirrored remote path."""

import logging
from typing import Callable, List, Optional

from ..errors import HostError, NotFoundError, TransferAborted
from ..host.base import HostBridge
from ..transfer.engine import TransferEngine
from ..transfer.models import (
    ConflictPolicy,
    TaskKind,
    TransferDirection,
    TransferQueue,
    TransferReport,
    TransferTask,
)
from .watcher import ChangeKind, FileChange, WatchSession

logger = logging.getLogger(__name__)

Submit = Callable[[Callable[[], None]], None]


class AutoSync:
    """Applies debounced local changes under ``local_root`` to ``remote_root``.

    Each changed file becomes one upload task that always overwrites and
    never prompts. Removals and moves are mirrored as remote remove and
    rename.
    """

    def __init__(
        self,
        local: HostBridge,
        remote: HostBridge,
        debounce_ms: int = 500,
        submit: Optional[Submit] = None,
        on_report: Optional[Callable[[TransferReport], None]] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.debounce_ms = debounce_ms
        self.submit = submit
        self.on_report = on_report
        self.local_root: Optional[str] = None
        self.remote_root: Optional[str] = None
        self.session: Optional[WatchSession] = None

    @property
    def watching(self) -> bool:
        """Return True while a watch session is running."""
        return self.session is not None and self.session.running

    def watch(self, local_root: str, remote_root: str, observer_factory=None) -> WatchSession:
        """Start watching ``local_root``, replacing any previous session."""
        self.unwatch()
        kwargs = {}
        if observer_factory is not None:
            kwargs["observer_factory"] = observer_factory
        session = WatchSession(local_root, self._on_changes, self.debounce_ms, **kwargs)
        session.start()
        self.session = session
        self.local_root = session.path
        self.remote_root = remote_root
        logger.info("Auto-sync %s -> %s", self.local_root, self.remote_root)
        return session

    def unwatch(self) -> None:
        """Stop the current watch session, if any."""
        if self.session is not None:
            self.session.stop()
            self.session = None

    def remote_path_for(self, local_path: str) -> Optional[str]:
        """Map a watched local path onto the remote tree."""
        if self.local_root is None or self.remote_root is None:
            return None
        relative = self.local.relative_to(local_path, self.local_root)
        if not relative:
            return None
        return self.remote.absolute(relative, self.remote_root)

    def _on_changes(self, changes: List[FileChange]) -> None:
        if self.submit is not None:
            self.submit(lambda: self.apply(changes))
        else:
            self.apply(changes)

    def apply(self, changes: List[FileChange]) -> TransferReport:
        """Mirror a batch of changes; return the upload report."""
        queue = TransferQueue()
        for change in changes:
            remote_path = self.remote_path_for(change.path)
            if remote_path is None:
                logger.debug("Ignoring change outside the watched root: %s", change.path)
                continue
            try:
                if change.kind == ChangeKind.CHANGED:
                    task = self._upload_task(change.path, remote_path)
                    if task is not None:
                        queue.tasks.append(task)
                elif change.kind == ChangeKind.REMOVED:
                    self._remove(remote_path)
                else:
                    self._move(change, remote_path, queue)
            except HostError as exc:
                logger.error("Auto-sync of %s failed: %s", change.path, exc)

        report = queue.report()
        if queue.tasks:
            engine = TransferEngine(self.local, self.remote)
            try:
                report = engine.run(queue, conflict_policy=ConflictPolicy.OVERWRITE_ALL)
            except TransferAborted as exc:
                logger.error("Auto-sync aborted: %s", exc)
                report = exc.report
        if self.on_report is not None:
            self.on_report(report)
        return report

    def _upload_task(self, local_path: str, remote_path: str) -> Optional[TransferTask]:
        try:
            entry = self.local.stat(local_path)
        except NotFoundError:
            logger.debug("%s vanished before upload", local_path)
            return None
        if entry.is_dir:
            return None
        self.remote.create_dirs(self.remote.dirname(remote_path))
        return TransferTask(
            source=entry,
            destination=remote_path,
            direction=TransferDirection.UPLOAD,
            kind=TaskKind.FILE,
            size=entry.size,
        )

    def _remove(self, remote_path: str) -> None:
        try:
            self.remote.remove(remote_path)
            logger.info("Auto-sync removed %s", remote_path)
        except NotFoundError:
            logger.debug("%s already absent on remote", remote_path)

    def _move(self, change: FileChange, remote_path: str, queue: TransferQueue) -> None:
        destination = self.remote_path_for(change.dest_path or "")
        if destination is None:
            self._remove(remote_path)
            return
        try:
            self.remote.create_dirs(self.remote.dirname(destination))
            self.remote.rename(remote_path, destination)
            logger.info("Auto-sync moved %s -> %s", remote_path, destination)
        except NotFoundError:
            # Never uploaded: send the file under its new name.
            task = self._upload_task(change.dest_path, destination)
            if task is not None:
                queue.tasks.append(task)
