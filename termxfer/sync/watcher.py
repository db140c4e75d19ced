"""Local file watching with a debounced change buffer."""

import logging
import os
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ChangeKind(Enum):
    """What happened to a watched file."""

    CHANGED = "changed"
    REMOVED = "removed"
    MOVED = "moved"


@dataclass
class FileChange:
    """One coalesced change to a local file."""

    kind: ChangeKind
    path: str
    dest_path: Optional[str] = None


ChangeCallback = Callable[[List[FileChange]], None]


class Debouncer:
    """Coalesces changes per path and delivers them after a quiet period.

    Every new change restarts the window; the latest kind recorded for a
    path wins.
    """

    def __init__(self, delay_ms: int, callback: ChangeCallback) -> None:
        self.delay = max(0, delay_ms) / 1000.0
        self.callback = callback
        self._buffer: Dict[str, FileChange] = {}
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def push(self, change: FileChange) -> None:
        """Record a change and restart the quiet period."""
        with self._lock:
            self._buffer[change.path] = change
            if change.kind == ChangeKind.MOVED and change.dest_path:
                self._buffer.pop(change.dest_path, None)
            if self._timer is not None:
                self._timer.cancel()
            self._timer = threading.Timer(self.delay, self.flush)
            self._timer.daemon = True
            self._timer.start()

    @property
    def pending(self) -> int:
        """Get the number of buffered paths."""
        with self._lock:
            return len(self._buffer)

    def flush(self) -> List[FileChange]:
        """Deliver buffered changes now."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            changes = list(self._buffer.values())
            self._buffer = {}
        if changes:
            logger.debug("Delivering %d debounced changes", len(changes))
            self.callback(changes)
        return changes

    def cancel(self) -> None:
        """Drop buffered changes without delivering them."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None
            self._buffer = {}


class _ChangeHandler(FileSystemEventHandler):
    """Feeds watchdog file events into a debouncer; directories are ignored."""

    def __init__(self, debouncer: Debouncer) -> None:
        super().__init__()
        self._debouncer = debouncer

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._debouncer.push(FileChange(ChangeKind.CHANGED, os.fsdecode(event.src_path)))

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._debouncer.push(FileChange(ChangeKind.CHANGED, os.fsdecode(event.src_path)))

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._debouncer.push(FileChange(ChangeKind.REMOVED, os.fsdecode(event.src_path)))

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._debouncer.push(
                FileChange(
                    ChangeKind.MOVED,
                    os.fsdecode(event.src_path),
                    os.fsdecode(event.dest_path),
                )
            )


class WatchSession:
    """Watches one local directory tree and reports debounced changes."""

    def __init__(
        self,
        path: str,
        callback: ChangeCallback,
        debounce_ms: int = 500,
        observer_factory=Observer,
    ) -> None:
        self.path = os.path.abspath(path)
        self.debouncer = Debouncer(debounce_ms, callback)
        self._observer_factory = observer_factory
        self._observer = None

    @property
    def running(self) -> bool:
        """Return True while the observer is active."""
        return self._observer is not None

    def start(self) -> None:
        """Start watching; raises NotADirectoryError if the path is not a directory."""
        if self._observer is not None:
            return
        if not os.path.isdir(self.path):
            raise NotADirectoryError(self.path)
        observer = self._observer_factory()
        observer.schedule(_ChangeHandler(self.debouncer), self.path, recursive=True)
        observer.daemon = True
        observer.start()
        self._observer = observer
        logger.info("Watching %s", self.path)

    def stop(self) -> None:
        """Stop watching and drop undelivered changes."""
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        observer.stop()
        observer.join(timeout=5)
        self.debouncer.cancel()
        logger.info("Stopped watching %s", self.path)

    def handler(self) -> FileSystemEventHandler:
        """Get an event handler feeding this session's debouncer."""
        return _ChangeHandler(self.debouncer)
