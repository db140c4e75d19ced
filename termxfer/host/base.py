"""Capability contract shared by every host bridge."""

import errno
import logging
import posixpath
import socket
import tempfile
import threading
from abc import ABC, abstractmethod
from typing import BinaryIO, Callable, List, Optional, TypeVar

from ..errors import (
    HostConnectionError,
    HostError,
    HostIOError,
    NotFoundError,
    PermissionDeniedError,
    UnsupportedOperation,
)
from .models import ConnectionState, Entry, join_path, normalize_path
from .params import ConnectionProfile

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NOT_FOUND_ERRNOS = {errno.ENOENT, errno.ENOTDIR}
_PERMISSION_ERRNOS = {errno.EACCES, errno.EPERM}


class BridgeStream:
    """Byte stream returned by ``open_read``/``open_write``.

    Every call takes the owning bridge's lock so that a transfer reading from
    a stream never interleaves with another operation on the same connection.
    """

    def __init__(
        self,
        bridge: "HostBridge",
        raw,
        path: str,
        on_close: Optional[Callable[[], None]] = None,
    ):
        self._bridge = bridge
        self._raw = raw
        self._path = path
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        """Return True once the stream has been closed."""
        return self._closed

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes."""
        with self._bridge._lock:
            try:
                return self._raw.read(size)
            except HostError:
                raise
            except Exception as exc:
                raise self._bridge._translate_error(exc, self._path) from exc

    def write(self, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        with self._bridge._lock:
            try:
                written = self._raw.write(data)
            except HostError:
                raise
            except Exception as exc:
                raise self._bridge._translate_error(exc, self._path) from exc
        return len(data) if written is None else written

    def close(self) -> None:
        """Close the stream and finalize the remote side."""
        if self._closed:
            return
        self._closed = True
        with self._bridge._lock:
            try:
                self._raw.close()
                if self._on_close is not None:
                    self._on_close()
            except HostError:
                raise
            except Exception as exc:
                raise self._bridge._translate_error(exc, self._path) from exc

    def __enter__(self) -> "BridgeStream":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class DeferredUploadStream(BridgeStream):
    """Write stream for backends without a streaming sink (scp, S3).

    Content is spooled locally and handed to ``upload(spool)`` on close.
    """

    SPOOL_MAX_MEMORY = 8 * 1024 * 1024

    def __init__(self, bridge: "HostBridge", path: str, upload: Callable[[BinaryIO], None]):
        self._spool = tempfile.SpooledTemporaryFile(max_size=self.SPOOL_MAX_MEMORY)

        def flush() -> None:
            self._spool.seek(0)
            upload(self._spool)

        super().__init__(bridge, self._spool, path, on_close=None)
        self._flush = flush

    def close(self) -> None:
        """Upload the spooled content, then release it."""
        if self.closed:
            return
        self._closed = True
        with self._bridge._lock:
            try:
                self._flush()
            except HostError:
                raise
            except Exception as exc:
                raise self._bridge._translate_error(exc, self._path) from exc
            finally:
                self._spool.close()


class HostBridge(ABC):
    """Unified filesystem operations for one backend connection.

    Subclasses implement the underscore-prefixed primitives; the public
    methods add locking, error translation and the reconnect-once policy.
    Operations a backend cannot express raise ``UnsupportedOperation``.
    """

    name = "host"

    def __init__(self, profile: Optional[ConnectionProfile] = None) -> None:
        self.profile = profile
        self._lock = threading.RLock()
        self._state = ConnectionState.DISCONNECTED

    # -- lifecycle

    @property
    def state(self) -> ConnectionState:
        """Get the connection lifecycle state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True when the bridge is connected."""
        return self._state == ConnectionState.CONNECTED

    @property
    def is_localhost(self) -> bool:
        """Return True for the local filesystem bridge."""
        return False

    def connect(self) -> None:
        """Open the connection if not already connected."""
        with self._lock:
            if self.is_connected:
                return
            self._connect_locked()

    def close(self) -> None:
        """Close the connection; safe to call more than once."""
        with self._lock:
            if self._state == ConnectionState.DISCONNECTED:
                return
            try:
                self._close()
            except Exception as exc:
                logger.warning("Error while closing %s bridge: %s", self.name, exc)
            finally:
                self._state = ConnectionState.DISCONNECTED
                logger.info("Disconnected from %s", self.describe())

    def reconnect(self) -> None:
        """Drop the current connection and open a fresh one."""
        with self._lock:
            self.close()
            self._connect_locked()

    def describe(self) -> str:
        """Get a user-facing description of the connection target."""
        if self.profile is not None:
            return self.profile.display_address
        return self.name

    def _connect_locked(self) -> None:
        """Establish the connection (lock must be held)."""
        self._state = ConnectionState.CONNECTING
        logger.info("Connecting to %s", self.describe())
        try:
            self._connect()
        except HostError:
            self._state = ConnectionState.DISCONNECTED
            raise
        except Exception as exc:
            self._state = ConnectionState.DISCONNECTED
            error = self._translate_error(exc, "")
            if not isinstance(error, HostConnectionError):
                error = HostConnectionError(f"Connection failed: {exc}")
            raise error from exc
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to %s", self.describe())

    # -- public operations

    def working_dir(self) -> str:
        """Get the directory a new session starts in."""
        return self._call("working_dir", "", self._working_dir)

    def list_dir(self, path: str) -> List[Entry]:
        """List a directory; entries are sorted by name."""
        entries = self._call("list_dir", path, lambda: self._list_dir(path))
        return sorted(entries, key=lambda x: x.name.lower())

    def stat(self, path: str) -> Entry:
        """Stat a path, following symbolic links."""
        return self._call("stat", path, lambda: self._stat(path))

    def exists(self, path: str) -> bool:
        """Check whether a path exists."""
        try:
            self.stat(path)
            return True
        except NotFoundError:
            return False

    def resolve(self, path: str) -> str:
        """Get the canonical identity of a path (symbolic links resolved)."""
        return self._call("resolve", path, lambda: self._resolve(path))

    def create_dir(self, path: str) -> None:
        """Create a single directory."""
        self._call("create_dir", path, lambda: self._create_dir(path))

    def create_dirs(self, path: str) -> List[str]:
        """Create ``path`` and any missing parents; return the created paths."""
        missing: List[str] = []
        current = path
        while not self.exists(current):
            missing.append(current)
            parent = self.dirname(current)
            if parent == current:
                break
            current = parent
        for directory in reversed(missing):
            self.create_dir(directory)
        return list(reversed(missing))

    def remove(self, path: str, recursive: bool = False) -> None:
        """Remove a file, or a directory (with its content when recursive)."""
        self._call("remove", path, lambda: self._remove(path, recursive))

    def rename(self, src: str, dst: str) -> None:
        """Rename or move a path."""
        self._call("rename", src, lambda: self._rename(src, dst))

    def open_read(self, path: str) -> BridgeStream:
        """Open a file for binary reading."""
        raw = self._call("open_read", path, lambda: self._open_read(path))
        return self._wrap_stream(raw, path)

    def open_write(self, path: str) -> BridgeStream:
        """Open (create or truncate) a file for binary writing."""
        raw = self._call("open_write", path, lambda: self._open_write(path))
        return self._wrap_stream(raw, path)

    def symlink(self, target: str, link_path: str) -> None:
        """Create a symbolic link at ``link_path`` pointing to ``target``."""
        self._call("symlink", link_path, lambda: self._symlink(target, link_path))

    def exec(self, command: str) -> str:
        """Execute a shell command on the host and return its output."""
        return self._call("exec", "", lambda: self._exec(command))

    # -- path helpers

    def join(self, base: str, *names: str) -> str:
        """Join path components for this host."""
        return join_path(base, *names)

    def basename(self, path: str) -> str:
        """Get the final component of a path."""
        return posixpath.basename(path.rstrip("/"))

    def dirname(self, path: str) -> str:
        """Get the parent directory of a path."""
        normalized = normalize_path(path)
        if normalized == "/":
            return "/"
        return posixpath.dirname(normalized) or "/"

    def absolute(self, path: str, cwd: str) -> str:
        """Resolve ``path`` against ``cwd`` without touching the host."""
        if path.startswith("/"):
            return normalize_path(path)
        return normalize_path(join_path(cwd, path))

    def relative_to(self, path: str, root: str) -> Optional[str]:
        """Get ``path`` relative to ``root`` or None if it lies outside."""
        path_n = normalize_path(path)
        root_n = normalize_path(root)
        if path_n == root_n:
            return ""
        prefix = root_n if root_n.endswith("/") else root_n + "/"
        if not path_n.startswith(prefix):
            return None
        return path_n[len(prefix):]

    # -- internals

    def _call(self, operation: str, path: str, func: Callable[[], T]) -> T:
        """Run an operation with the reconnect-once policy."""
        with self._lock:
            if not self.is_connected:
                raise HostConnectionError(
                    f"Not connected to {self.describe()}", path
                )
            try:
                return self._invoke(func, path)
            except HostIOError as exc:
                if not exc.transient:
                    raise
                logger.warning(
                    "%s %s failed (%s); reconnecting once", operation, path, exc
                )
                self._reconnect_locked()
                return self._invoke(func, path)

    def _invoke(self, func: Callable[[], T], path: str) -> T:
        try:
            return func()
        except HostError:
            raise
        except Exception as exc:
            raise self._translate_error(exc, path) from exc

    def _reconnect_locked(self) -> None:
        try:
            self._close()
        except Exception as exc:
            logger.debug("Ignoring close failure before reconnect: %s", exc)
        self._state = ConnectionState.DISCONNECTED
        self._connect_locked()

    def _wrap_stream(self, raw, path: str) -> BridgeStream:
        if isinstance(raw, BridgeStream):
            return raw
        return BridgeStream(self, raw, path)

    def _translate_error(self, exc: BaseException, path: str) -> HostError:
        """Map a native exception to a ``HostError``."""
        if isinstance(exc, HostError):
            return exc
        if isinstance(exc, (socket.timeout, EOFError, ConnectionError)):
            return HostIOError(f"Connection interrupted: {exc}", path, transient=True)
        if isinstance(exc, FileNotFoundError):
            return NotFoundError(f"No such file or directory: {path}", path)
        if isinstance(exc, PermissionError):
            return PermissionDeniedError(f"Permission denied: {path}", path)
        if isinstance(exc, OSError):
            if exc.errno in _NOT_FOUND_ERRNOS:
                return NotFoundError(f"No such file or directory: {path}", path)
            if exc.errno in _PERMISSION_ERRNOS:
                return PermissionDeniedError(f"Permission denied: {path}", path)
            return HostIOError(str(exc) or exc.__class__.__name__, path)
        return HostIOError(f"{exc.__class__.__name__}: {exc}", path)

    def _unsupported(self, operation: str) -> UnsupportedOperation:
        return UnsupportedOperation(f"{self.name} does not support {operation}")

    @abstractmethod
    def _connect(self) -> None:
        """Open the underlying session."""

    @abstractmethod
    def _close(self) -> None:
        """Close the underlying session."""

    def _working_dir(self) -> str:
        if self.profile is not None and self.profile.remote_path:
            return normalize_path(self.profile.remote_path)
        return "/"

    @abstractmethod
    def _list_dir(self, path: str) -> List[Entry]:
        """List a directory without sorting."""

    @abstractmethod
    def _stat(self, path: str) -> Entry:
        """Stat a path, following links."""

    def _resolve(self, path: str) -> str:
        return normalize_path(path)

    @abstractmethod
    def _create_dir(self, path: str) -> None:
        """Create one directory."""

    @abstractmethod
    def _remove(self, path: str, recursive: bool) -> None:
        """Remove a path."""

    @abstractmethod
    def _rename(self, src: str, dst: str) -> None:
        """Rename a path."""

    @abstractmethod
    def _open_read(self, path: str) -> BinaryIO:
        """Open a readable binary stream."""

    @abstractmethod
    def _open_write(self, path: str) -> BinaryIO:
        """Open a writable binary stream."""

    def _symlink(self, target: str, link_path: str) -> None:
        raise self._unsupported("symbolic links")

    def _exec(self, command: str) -> str:
        raise self._unsupported("command execution")
