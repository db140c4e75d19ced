from .autosync import AutoSync
from .browsing import SyncBrowser
from .watcher import ChangeKind, Debouncer, FileChange, WatchSession

__all__ = ["AutoSync", "ChangeKind", "Debouncer", "FileChange", "SyncBrowser", "WatchSession"]
