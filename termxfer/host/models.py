"""Entry and lifecycle types returned by host bridges."""

import posixpath
import stat
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class EntryKind(Enum):
    """Kind of filesystem entry."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


class ConnectionState(Enum):
    """Lifecycle of a host bridge connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Entry:
    """Directory entry returned by a host bridge."""

    path: str
    name: str
    kind: EntryKind
    size: int = 0
    mtime: float = 0.0
    mode: Optional[int] = None
    symlink_target: Optional[str] = None

    @property
    def is_dir(self) -> bool:
        """Return True for directories."""
        return self.kind == EntryKind.DIRECTORY

    @property
    def is_file(self) -> bool:
        """Return True for regular files."""
        return self.kind == EntryKind.FILE

    @property
    def is_symlink(self) -> bool:
        """Return True for symbolic links."""
        return self.kind == EntryKind.SYMLINK

    @property
    def is_hidden(self) -> bool:
        """Return True for dot-files."""
        return self.name.startswith(".")

    @property
    def extension(self) -> str:
        """Get the lower-cased file extension without the dot."""
        if self.is_dir or "." not in self.name.lstrip("."):
            return ""
        return self.name.rsplit(".", 1)[1].lower()

    @property
    def mtime_datetime(self) -> datetime:
        """Get modification time as datetime."""
        return datetime.fromtimestamp(self.mtime)

    @property
    def permissions(self) -> str:
        """Get a ls-style permission string, or an empty string if unknown."""
        if self.mode is None:
            return ""
        return stat.filemode(self.mode)

    def __str__(self) -> str:
        type_str = {"file": "FILE", "directory": "DIR", "symlink": "LINK"}[
            self.kind.value
        ]
        return f"{type_str} {self.name} ({self.size} bytes)"


def kind_from_mode(mode: Optional[int]) -> EntryKind:
    """Map a st_mode value to an entry kind."""
    if mode is None:
        return EntryKind.FILE
    if stat.S_ISLNK(mode):
        return EntryKind.SYMLINK
    if stat.S_ISDIR(mode):
        return EntryKind.DIRECTORY
    return EntryKind.FILE


def join_path(*parts: str) -> str:
    """Join path parts using POSIX separators, keeping a leading slash."""
    clean_parts = []
    for index, part in enumerate(parts):
        part_str = str(part or "").replace("\\", "/")
        if not part_str:
            continue
        if index > 0 or clean_parts:
            part_str = part_str.strip("/")
            if not part_str:
                continue
        clean_parts.append(part_str)

    if not clean_parts:
        return ""

    return posixpath.join(*clean_parts)


def normalize_path(path: str) -> str:
    """Normalize a POSIX path (collapse '..' and duplicate separators)."""
    value = str(path or "").strip().replace("\\", "/")
    if not value:
        return "/"
    normalized = posixpath.normpath(value)
    if normalized.startswith("//"):
        normalized = "/" + normalized.lstrip("/")
    return normalized


def parent_path(path: str) -> str:
    """Get the parent of a POSIX path ('/' stays '/')."""
    normalized = normalize_path(path)
    if normalized == "/":
        return "/"
    return posixpath.dirname(normalized) or "/"
