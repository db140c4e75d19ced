"""Parsers for textual directory listings (``ls -l`` and FTP ``LIST``/``MLSD``)."""

import stat
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

from .models import EntryKind

_TYPE_BITS = {
    "d": stat.S_IFDIR,
    "l": stat.S_IFLNK,
    "-": stat.S_IFREG,
    "c": stat.S_IFCHR,
    "b": stat.S_IFBLK,
    "p": stat.S_IFIFO,
    "s": stat.S_IFSOCK,
}
_PERMISSION_BITS = [
    stat.S_IRUSR, stat.S_IWUSR, stat.S_IXUSR,
    stat.S_IRGRP, stat.S_IWGRP, stat.S_IXGRP,
    stat.S_IROTH, stat.S_IWOTH, stat.S_IXOTH,
]


@dataclass
class ListingLine:
    """One parsed listing row."""

    name: str
    kind: EntryKind
    size: int
    mtime: float
    mode: Optional[int] = None
    symlink_target: Optional[str] = None


def mode_from_permissions(text: str) -> Optional[int]:
    """Convert a ``drwxr-xr-x`` string into st_mode bits."""
    if len(text) < 10 or text[0] not in _TYPE_BITS:
        return None
    mode = _TYPE_BITS[text[0]]
    for char, bit in zip(text[1:10], _PERMISSION_BITS):
        if char not in "-STl":
            mode |= bit
    return mode


def _parse_list_date(month: str, day: str, time_or_year: str, now: datetime) -> float:
    try:
        if ":" in time_or_year:
            parsed = datetime.strptime(
                f"{month} {day} {now.year} {time_or_year}", "%b %d %Y %H:%M"
            )
            # Dates without a year are within the last six months.
            if parsed > now:
                parsed = parsed.replace(year=now.year - 1)
        else:
            parsed = datetime.strptime(f"{month} {day} {time_or_year}", "%b %d %Y")
    except ValueError:
        return 0.0
    return parsed.timestamp()


def parse_list_line(line: str, now: Optional[datetime] = None) -> Optional[ListingLine]:
    """Parse a Unix-style ``ls -l`` / FTP LIST line.

    Returns None for headers (``total 12``), ``.``/``..`` and lines that do
    not look like a listing row.
    """
    text = (line or "").rstrip("\r\n")
    parts = text.split(maxsplit=8)
    if len(parts) < 9:
        return None

    permissions, size_text, name = parts[0], parts[4], parts[8]
    mode = mode_from_permissions(permissions)
    if mode is None:
        return None

    symlink_target = None
    if permissions.startswith("l"):
        kind = EntryKind.SYMLINK
        if " -> " in name:
            name, symlink_target = name.split(" -> ", 1)
    elif permissions.startswith("d"):
        kind = EntryKind.DIRECTORY
    else:
        kind = EntryKind.FILE

    if name in (".", ".."):
        return None

    try:
        size = int(size_text)
    except ValueError:
        size = 0
    if kind == EntryKind.DIRECTORY:
        size = 0

    mtime = _parse_list_date(parts[5], parts[6], parts[7], now or datetime.now())
    return ListingLine(
        name=name,
        kind=kind,
        size=size,
        mtime=mtime,
        mode=mode,
        symlink_target=symlink_target,
    )


def parse_mlsd_facts(name: str, facts: Dict[str, str]) -> Optional[ListingLine]:
    """Build a listing row from ``ftplib.FTP.mlsd`` facts."""
    fact_type = facts.get("type", "file").lower()
    if fact_type in ("cdir", "pdir") or name in (".", ".."):
        return None

    if fact_type == "dir":
        kind = EntryKind.DIRECTORY
    elif fact_type.startswith("os.unix=slink") or fact_type == "slink":
        kind = EntryKind.SYMLINK
    else:
        kind = EntryKind.FILE

    size = 0
    if kind != EntryKind.DIRECTORY:
        try:
            size = int(facts.get("size", 0))
        except ValueError:
            size = 0

    mtime = 0.0
    modify = facts.get("modify")
    if modify:
        try:
            mtime = datetime.strptime(modify[:14], "%Y%m%d%H%M%S").timestamp()
        except ValueError:
            mtime = 0.0

    mode = None
    unix_mode = facts.get("unix.mode")
    if unix_mode:
        try:
            type_bit = stat.S_IFDIR if kind == EntryKind.DIRECTORY else stat.S_IFREG
            mode = type_bit | int(unix_mode, 8)
        except ValueError:
            mode = None

    return ListingLine(name=name, kind=kind, size=size, mtime=mtime, mode=mode)
