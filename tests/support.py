"""In-memory host bridge used as the remote side in tests."""

import errno
import io
import itertools
from typing import Dict, List, Optional

from termxfer.host.base import HostBridge
from termxfer.host.models import Entry, EntryKind, join_path, normalize_path, parent_path


class _MemoryWriter(io.BytesIO):
    def __init__(self, bridge: "MemoryBridge", path: str) -> None:
        super().__init__()
        self._bridge = bridge
        self._path = path

    def close(self) -> None:
        if not self.closed:
            self._bridge.files[self._path] = self.getvalue()
            self._bridge.mtimes[self._path] = self._bridge.tick()
        super().close()


class MemoryBridge(HostBridge):
    """POSIX-like tree kept in dictionaries, with injectable failures."""

    name = "memory"

    def __init__(self) -> None:
        super().__init__(None)
        self.files: Dict[str, bytes] = {}
        self.dirs = {"/"}
        self.links: Dict[str, str] = {}
        self.mtimes: Dict[str, float] = {}
        self.failures: Dict[str, List[BaseException]] = {}
        self.connects = 0
        self.calls: List[str] = []
        self._clock = itertools.count(1000)

    # -- test helpers

    def tick(self) -> float:
        return float(next(self._clock))

    def fail(self, operation: str, *errors: BaseException) -> None:
        self.failures.setdefault(operation, []).extend(errors)

    def _maybe_fail(self, operation: str) -> None:
        self.calls.append(operation)
        pending = self.failures.get(operation)
        if pending:
            raise pending.pop(0)

    def add_dir(self, path: str) -> "MemoryBridge":
        path = normalize_path(path)
        while path not in self.dirs:
            self.dirs.add(path)
            path = parent_path(path)
        return self

    def add_file(self, path: str, data: bytes, mtime: Optional[float] = None) -> "MemoryBridge":
        path = normalize_path(path)
        self.add_dir(parent_path(path))
        self.files[path] = data
        self.mtimes[path] = self.tick() if mtime is None else mtime
        return self

    def add_link(self, path: str, target: str) -> "MemoryBridge":
        self.links[normalize_path(path)] = normalize_path(target)
        return self

    # -- primitives

    def _connect(self) -> None:
        self.connects += 1
        self._maybe_fail("connect")

    def _close(self) -> None:
        pass

    def _real(self, path: str) -> str:
        current = "/"
        for part in normalize_path(path).strip("/").split("/"):
            if not part:
                continue
            current = join_path(current, part)
            hops = 0
            while current in self.links:
                current = self.links[current]
                hops += 1
                if hops > 40:
                    raise OSError(errno.ELOOP, "Too many levels of symbolic links")
        return current

    def _children(self, real: str) -> List[str]:
        names = set()
        for path in list(self.files) + list(self.dirs) + list(self.links):
            if path != "/" and parent_path(path) == real:
                names.add(path.rsplit("/", 1)[-1])
        return sorted(names)

    def _list_dir(self, path: str) -> List[Entry]:
        self._maybe_fail("list_dir")
        real = self._real(path)
        if real not in self.dirs:
            raise FileNotFoundError(errno.ENOENT, "No such directory", path)
        entries = []
        for name in self._children(real):
            child_real = join_path(real, name)
            child_path = join_path(normalize_path(path), name)
            if child_real in self.links:
                entries.append(
                    Entry(
                        path=child_path,
                        name=name,
                        kind=EntryKind.SYMLINK,
                        symlink_target=self.links[child_real],
                    )
                )
            else:
                entries.append(self._entry(child_path, child_real))
        return entries

    def _entry(self, path: str, real: str) -> Entry:
        name = path.rstrip("/").rsplit("/", 1)[-1] or "/"
        if real in self.dirs:
            return Entry(path=path, name=name, kind=EntryKind.DIRECTORY)
        if real in self.files:
            return Entry(
                path=path,
                name=name,
                kind=EntryKind.FILE,
                size=len(self.files[real]),
                mtime=self.mtimes.get(real, 0.0),
            )
        raise FileNotFoundError(errno.ENOENT, "No such file", path)

    def _stat(self, path: str) -> Entry:
        self._maybe_fail("stat")
        return self._entry(normalize_path(path), self._real(path))

    def _resolve(self, path: str) -> str:
        return self._real(path)

    def _create_dir(self, path: str) -> None:
        self._maybe_fail("create_dir")
        real = self._real(path)
        if real in self.dirs or real in self.files:
            raise FileExistsError(errno.EEXIST, "File exists", path)
        if parent_path(real) not in self.dirs:
            raise FileNotFoundError(errno.ENOENT, "No such directory", path)
        self.dirs.add(real)

    def _remove(self, path: str, recursive: bool) -> None:
        self._maybe_fail("remove")
        path = normalize_path(path)
        if path in self.links:
            del self.links[path]
            return
        real = self._real(path)
        if real in self.files:
            del self.files[real]
            self.mtimes.pop(real, None)
            return
        if real not in self.dirs:
            raise FileNotFoundError(errno.ENOENT, "No such file", path)
        if self._children(real) and not recursive:
            raise OSError(errno.ENOTEMPTY, "Directory not empty", path)
        prefix = real.rstrip("/") + "/"
        for store in (self.files, self.links, self.mtimes):
            for key in [k for k in store if k.startswith(prefix)]:
                del store[key]
        self.dirs = {d for d in self.dirs if not d.startswith(prefix) and d != real}

    def _rename(self, src: str, dst: str) -> None:
        self._maybe_fail("rename")
        real = self._real(src)
        target = normalize_path(dst)
        if real in self.files:
            self.files[target] = self.files.pop(real)
            self.mtimes[target] = self.mtimes.pop(real, 0.0)
            return
        raise FileNotFoundError(errno.ENOENT, "No such file", src)

    def _open_read(self, path: str):
        self._maybe_fail("open_read")
        real = self._real(path)
        if real not in self.files:
            raise FileNotFoundError(errno.ENOENT, "No such file", path)
        return io.BytesIO(self.files[real])

    def _open_write(self, path: str):
        self._maybe_fail("open_write")
        real = self._real(path)
        if parent_path(real) not in self.dirs:
            raise FileNotFoundError(errno.ENOENT, "No such directory", path)
        return _MemoryWriter(self, real)

    def _symlink(self, target: str, link_path: str) -> None:
        self._maybe_fail("symlink")
        self.add_link(link_path, target)
