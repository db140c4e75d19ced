"""Explorer session: one pane's view of a host bridge."""

import fnmatch
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Set, Union

from ..errors import HostError, NotFoundError
from ..host.base import HostBridge
from ..host.models import Entry
from .sorting import SortDirection, SortKey, sort_entries

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 64
FIND_RESULT_LIMIT = 1024

EntryRef = Union[Entry, str]


@dataclass
class Listing:
    """A directory read from the bridge, not yet shown."""

    path: str
    entries: List[Entry]


@dataclass
class ExplorerState:
    """Everything a pane shows besides the host itself."""

    cwd: Optional[str] = None
    entries: List[Entry] = field(default_factory=list)
    sort_key: SortKey = SortKey.NAME
    sort_direction: SortDirection = SortDirection.ASCENDING
    group_dirs_first: bool = True
    filter_glob: Optional[str] = None
    show_hidden: bool = False
    selection: Set[str] = field(default_factory=set)
    history: List[str] = field(default_factory=list)


class ExplorerSession:
    """Navigation, sorting, filtering and selection over one bridge.

    Every failing operation leaves the state exactly as it was. The
    ``read_*`` methods only talk to the bridge and return a ``Listing``;
    the ``show*`` methods apply one to the state. A caller driving the
    bridge from a worker thread applies the result on its own thread.
    """

    def __init__(
        self,
        bridge: HostBridge,
        show_hidden: bool = False,
        group_dirs_first: bool = True,
    ) -> None:
        self.bridge = bridge
        self.state = ExplorerState(show_hidden=show_hidden, group_dirs_first=group_dirs_first)

    @property
    def cwd(self) -> Optional[str]:
        """Get the current working directory."""
        return self.state.cwd

    def open(self, path: Optional[str] = None) -> None:
        """Enter the start directory (or ``path``) of a freshly connected bridge."""
        target = path or self.bridge.working_dir()
        self.show(self.read_directory(self.path_for(target)), push_history=False)

    # -- reading

    def read_directory(self, path: str) -> Listing:
        """Stat and list the absolute ``path`` without touching the state."""
        entry = self.bridge.stat(path)
        if not entry.is_dir:
            raise NotFoundError(f"Not a directory: {path}", path)
        return Listing(path, self.bridge.list_dir(path))

    def read_listing(self, path: str) -> Listing:
        """List the absolute ``path`` without touching the state."""
        return Listing(path, self.bridge.list_dir(path))

    # -- applying

    def show(self, listing: Listing, push_history: bool = True) -> None:
        """Make a listing the current directory."""
        previous = self.state.cwd
        if push_history and previous is not None and previous != listing.path:
            self.state.history.append(previous)
            del self.state.history[:-HISTORY_LIMIT]
        self.state.cwd = listing.path
        self.state.entries = listing.entries
        self.state.selection = set()
        logger.debug("%s: entered %s", self.bridge.describe(), listing.path)

    def show_back(self, listing: Listing) -> None:
        """Show the directory taken from the top of the history."""
        self.show(listing, push_history=False)
        if self.state.history and self.state.history[-1] == listing.path:
            self.state.history.pop()

    def show_refresh(self, listing: Listing) -> bool:
        """Replace the entries of the cwd, keeping selected paths that still exist.

        A listing of another directory (the cwd moved on meanwhile) is
        ignored; returns whether it was applied.
        """
        if listing.path != self.state.cwd:
            return False
        present = {entry.path for entry in listing.entries}
        self.state.entries = listing.entries
        self.state.selection &= present
        return True

    # -- navigation

    def enter_directory(self, path: str) -> None:
        """Change into ``path`` (absolute or relative to the cwd)."""
        self.show(self.read_directory(self.path_for(path)))

    def parent_path(self) -> Optional[str]:
        """Get the parent of the cwd, or None at the top."""
        if self.state.cwd is None:
            return None
        parent = self.bridge.dirname(self.state.cwd)
        return None if parent == self.state.cwd else parent

    def go_to_parent(self) -> None:
        """Change into the parent of the cwd."""
        parent = self.parent_path()
        if parent is not None:
            self.enter_directory(parent)

    def back_path(self) -> Optional[str]:
        """Get the directory ``go_back`` would return to."""
        return self.state.history[-1] if self.state.history else None

    def go_back(self) -> bool:
        """Return to the previous directory; False when history is empty."""
        previous = self.back_path()
        if previous is None:
            return False
        self.show_back(self.read_directory(previous))
        return True

    def refresh(self) -> None:
        """Re-list the cwd, keeping selected paths that still exist."""
        if self.state.cwd is None:
            return
        self.show_refresh(self.read_listing(self.state.cwd))

    def path_for(self, path: str) -> str:
        """Resolve ``path`` against the cwd."""
        return self.bridge.absolute(path, self.state.cwd or "/")

    # -- presentation

    def set_sort(self, key: SortKey, direction: Optional[SortDirection] = None) -> None:
        """Change the sort column and, optionally, the direction."""
        self.state.sort_key = key
        if direction is not None:
            self.state.sort_direction = direction

    def set_filter(self, glob: Optional[str]) -> None:
        """Show only entries matching ``glob``; None or '' clears it."""
        self.state.filter_glob = glob or None

    def toggle_hidden(self) -> bool:
        """Flip hidden-file visibility and return the new value."""
        self.state.show_hidden = not self.state.show_hidden
        return self.state.show_hidden

    def visible_entries(self) -> List[Entry]:
        """Get the cached entries after hidden filter, glob filter and sort."""
        entries = self.state.entries
        if not self.state.show_hidden:
            entries = [e for e in entries if not e.is_hidden]
        if self.state.filter_glob:
            entries = [e for e in entries if fnmatch.fnmatch(e.name, self.state.filter_glob)]
        return sort_entries(
            entries,
            self.state.sort_key,
            self.state.sort_direction,
            self.state.group_dirs_first,
        )

    def entry_by_name(self, name: str) -> Optional[Entry]:
        """Find a cached entry by name."""
        for entry in self.state.entries:
            if entry.name == name:
                return entry
        return None

    # -- selection

    def select(self, item: EntryRef) -> None:
        """Add a cached entry to the selection."""
        path = self._cached_path(item)
        if path is not None:
            self.state.selection.add(path)

    def deselect(self, item: EntryRef) -> None:
        """Remove an entry from the selection."""
        path = item.path if isinstance(item, Entry) else item
        self.state.selection.discard(path)

    def toggle_selection(self, item: EntryRef) -> None:
        """Select an unselected entry or deselect a selected one."""
        path = item.path if isinstance(item, Entry) else item
        if path in self.state.selection:
            self.state.selection.discard(path)
        else:
            self.select(item)

    def select_all(self) -> None:
        """Select every visible entry."""
        self.state.selection = {entry.path for entry in self.visible_entries()}

    def clear_selection(self) -> None:
        """Drop the selection."""
        self.state.selection = set()

    def selected_entries(self) -> List[Entry]:
        """Get selected entries in cache order."""
        return [e for e in self.state.entries if e.path in self.state.selection]

    def _cached_path(self, item: EntryRef) -> Optional[str]:
        path = item.path if isinstance(item, Entry) else item
        for entry in self.state.entries:
            if entry.path == path:
                return path
        logger.debug("Ignoring selection of %s: not in the current listing", path)
        return None

    # -- file operations

    def find(
        self, glob: str, limit: int = FIND_RESULT_LIMIT, root: Optional[str] = None
    ) -> List[Entry]:
        """Search the tree under ``root`` (default: the cwd) for names matching ``glob``.

        Symbolic links are not descended into. Unreadable directories are
        logged and skipped.
        """
        root = root or self.state.cwd
        if root is None:
            return []
        results: List[Entry] = []
        pending = [root]
        while pending and len(results) < limit:
            directory = pending.pop(0)
            try:
                children = self.bridge.list_dir(directory)
            except HostError as exc:
                logger.warning("find: cannot list %s: %s", directory, exc)
                continue
            for child in children:
                if fnmatch.fnmatch(child.name, glob):
                    results.append(child)
                    if len(results) >= limit:
                        break
                if child.is_dir:
                    pending.append(child.path)
        return results

    def make_dir(self, name: str) -> str:
        """Create a directory in the cwd and refresh."""
        path = self.path_for(name)
        self.bridge.create_dir(path)
        self.refresh()
        return path

    def create_file(self, name: str) -> str:
        """Create an empty file in the cwd and refresh."""
        path = self.path_for(name)
        self.create_empty_file(path)
        self.refresh()
        return path

    def create_empty_file(self, path: str) -> None:
        """Create an empty file at the absolute ``path``; existing paths are refused."""
        if self.bridge.exists(path):
            raise HostError(f"{path} already exists", path)
        with self.bridge.open_write(path):
            pass

    def rename_destination(self, entry: Entry, new_name: str) -> str:
        """Get where ``rename_entry`` would put ``entry``."""
        if "/" in new_name:
            return self.path_for(new_name)
        return self.bridge.join(self.bridge.dirname(entry.path), new_name)

    def rename_entry(self, entry: Entry, new_name: str) -> str:
        """Rename (or move, if ``new_name`` is a path) an entry and refresh."""
        destination = self.rename_destination(entry, new_name)
        self.bridge.rename(entry.path, destination)
        self.refresh()
        return destination

    def remove_entries(self, entries: Iterable[Entry]) -> None:
        """Delete entries (directories recursively) without refreshing.

        Every entry is attempted; the first failure is raised afterwards.
        """
        first_error: Optional[HostError] = None
        for entry in entries:
            try:
                self.bridge.remove(entry.path, recursive=entry.is_dir)
                logger.info("Deleted %s", entry.path)
            except HostError as exc:
                logger.error("Could not delete %s: %s", entry.path, exc)
                if first_error is None:
                    first_error = exc
        if first_error is not None:
            raise first_error

    def delete_entries(self, entries: Iterable[Entry]) -> None:
        """Delete entries, then refresh even when some of them failed."""
        try:
            self.remove_entries(entries)
        finally:
            self.refresh()

    def __repr__(self) -> str:
        return f"ExplorerSession({self.bridge.describe()!r}, cwd={self.state.cwd!r})"
