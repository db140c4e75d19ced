"""Sort keys for explorer listings."""

from enum import Enum
from typing import Callable, List

from ..host.models import Entry


class SortKey(Enum):
    """Column an explorer is sorted by."""

    NAME = "name"
    MODIFIED = "modified"
    SIZE = "size"
    TYPE = "type"


class SortDirection(Enum):
    """Sort order."""

    ASCENDING = "ascending"
    DESCENDING = "descending"


def _name_key(entry: Entry):
    return entry.name.lower()


def _type_key(entry: Entry):
    return (entry.extension, entry.name.lower())


def _size_key(entry: Entry):
    return (entry.size, entry.name.lower())


def _modified_key(entry: Entry):
    return (entry.mtime, entry.name.lower())


_KEY_FUNCTIONS = {
    SortKey.NAME: _name_key,
    SortKey.MODIFIED: _modified_key,
    SortKey.SIZE: _size_key,
    SortKey.TYPE: _type_key,
}


def key_function(key: SortKey) -> Callable[[Entry], object]:
    """Get the comparison key for a sort column."""
    return _KEY_FUNCTIONS[key]


def sort_entries(
    entries: List[Entry],
    key: SortKey = SortKey.NAME,
    direction: SortDirection = SortDirection.ASCENDING,
    group_dirs_first: bool = True,
) -> List[Entry]:
    """Return a sorted copy of ``entries``.

    With ``group_dirs_first`` directories always precede files, whichever
    direction is chosen.
    """
    reverse = direction == SortDirection.DESCENDING
    ordered = sorted(entries, key=key_function(key), reverse=reverse)
    if not group_dirs_first:
        return ordered
    return [e for e in ordered if e.is_dir] + [e for e in ordered if not e.is_dir]
