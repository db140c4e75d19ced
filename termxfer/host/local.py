"""Local filesystem bridge."""

import os
import shutil
import subprocess
from pathlib import Path
from typing import BinaryIO, List, Optional

from ..errors import HostIOError, NotFoundError
from .base import HostBridge
from .models import Entry, EntryKind, kind_from_mode


class LocalBridge(HostBridge):
    """Host bridge over the local filesystem."""

    name = "localhost"

    def __init__(self, start_dir: Optional[str] = None) -> None:
        super().__init__(None)
        self._start_dir = start_dir

    @property
    def is_localhost(self) -> bool:
        """Return True for the local filesystem bridge."""
        return True

    def describe(self) -> str:
        """Get a user-facing description of the connection target."""
        return "localhost"

    def _connect(self) -> None:
        start = self._start_dir or os.getcwd()
        if not os.path.isdir(start):
            raise NotFoundError(f"Start directory not found: {start}", start)

    def _close(self) -> None:
        pass

    def _working_dir(self) -> str:
        return os.path.abspath(self._start_dir or os.getcwd())

    def join(self, base: str, *names: str) -> str:
        """Join path components for this host."""
        return os.path.join(base, *names)

    def basename(self, path: str) -> str:
        """Get the final component of a path."""
        return os.path.basename(path.rstrip(os.sep)) or path

    def dirname(self, path: str) -> str:
        """Get the parent directory of a path."""
        absolute = os.path.abspath(path)
        return os.path.dirname(absolute) or absolute

    def absolute(self, path: str, cwd: str) -> str:
        """Resolve ``path`` against ``cwd`` without touching the filesystem."""
        return os.path.normpath(os.path.join(cwd, os.path.expanduser(path)))

    def relative_to(self, path: str, root: str) -> Optional[str]:
        """Get ``path`` relative to ``root`` or None if it lies outside."""
        try:
            relative = Path(os.path.abspath(path)).relative_to(os.path.abspath(root))
        except ValueError:
            return None
        value = relative.as_posix()
        return "" if value == "." else value

    @staticmethod
    def _entry_from_stat(path: str, details: os.stat_result) -> Entry:
        return Entry(
            path=path,
            name=os.path.basename(path.rstrip(os.sep)) or path,
            kind=kind_from_mode(details.st_mode),
            size=0 if os.path.isdir(path) and not os.path.islink(path) else int(details.st_size),
            mtime=float(details.st_mtime),
            mode=details.st_mode,
        )

    def _list_dir(self, path: str) -> List[Entry]:
        entries = []
        with os.scandir(path) as iterator:
            for item in iterator:
                details = item.stat(follow_symlinks=False)
                entry = self._entry_from_stat(item.path, details)
                if entry.is_symlink:
                    try:
                        entry.symlink_target = os.readlink(item.path)
                    except OSError:
                        entry.symlink_target = None
                entries.append(entry)
        return entries

    def _stat(self, path: str) -> Entry:
        details = os.stat(path)
        entry = self._entry_from_stat(path, details)
        if os.path.isdir(path):
            entry.kind = EntryKind.DIRECTORY
            entry.size = 0
        return entry

    def _resolve(self, path: str) -> str:
        return os.path.realpath(path)

    def _create_dir(self, path: str) -> None:
        os.mkdir(path)

    def _remove(self, path: str, recursive: bool) -> None:
        if os.path.isdir(path) and not os.path.islink(path):
            if recursive:
                shutil.rmtree(path)
            else:
                os.rmdir(path)
            return
        os.remove(path)

    def _rename(self, src: str, dst: str) -> None:
        os.rename(src, dst)

    def _open_read(self, path: str) -> BinaryIO:
        return open(path, "rb")

    def _open_write(self, path: str) -> BinaryIO:
        return open(path, "wb")

    def _symlink(self, target: str, link_path: str) -> None:
        os.symlink(target, link_path)

    def _exec(self, command: str) -> str:
        result = subprocess.run(
            command,
            shell=True,
            cwd=self._working_dir(),
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
        )
        if result.returncode != 0:
            raise HostIOError(
                f"Command exited with status {result.returncode}: {result.stdout.strip()}"
            )
        return result.stdout
