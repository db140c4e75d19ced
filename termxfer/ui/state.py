"""The single application state value owned by the controller."""

import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..bookmarks.store import BookmarkStore
from ..config import Config
from ..explorer.session import ExplorerSession
from ..sync.autosync import AutoSync
from ..sync.browsing import SyncBrowser
from ..transfer.models import TransferQueue, TransferReport
from ..transfer.progress import ProgressSnapshot
from .log_buffer import LogBuffer


class Pane(Enum):
    """One of the two explorer panes."""

    LOCAL = "local"
    REMOTE = "remote"


@dataclass
class Notification:
    """A message shown to the user until dismissed."""

    level: str
    text: str


@dataclass
class TransferRun:
    """The transfer currently executing, if any."""

    queue: Optional[TransferQueue] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    progress: Optional[ProgressSnapshot] = None
    report: Optional[TransferReport] = None
    timer: Optional[threading.Timer] = None

    @property
    def finished(self) -> bool:
        """Return True once the run produced a report."""
        return self.report is not None


@dataclass
class AppState:
    """Everything the UI renders, in one place."""

    config: Config
    bookmarks: BookmarkStore
    local: ExplorerSession
    log: LogBuffer
    remote: Optional[ExplorerSession] = None
    sync: Optional[SyncBrowser] = None
    autosync: Optional[AutoSync] = None
    transfer: Optional[TransferRun] = None
    last_report: Optional[TransferReport] = None
    notifications: List[Notification] = field(default_factory=list)
    active_pane: Pane = Pane.LOCAL
    running: bool = True

    def session(self, pane: Pane) -> Optional[ExplorerSession]:
        """Get the explorer session behind a pane."""
        return self.local if pane == Pane.LOCAL else self.remote

    def notify(self, level: str, text: str) -> Notification:
        """Queue a notification for the user."""
        notification = Notification(level, text)
        self.notifications.append(notification)
        return notification

    def pop_notifications(self) -> List[Notification]:
        """Take all pending notifications."""
        pending, self.notifications = self.notifications, []
        return pending
