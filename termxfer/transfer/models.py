"""Transfer tasks, queues, policies and run reports."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..host.models import Entry

CHUNK_SIZE = 32768


class TransferDirection(Enum):
    """Direction of a transfer between the two explorer panes."""

    UPLOAD = "upload"
    DOWNLOAD = "download"
    LOCAL_COPY = "local_copy"


class TaskKind(Enum):
    """What a task does at its destination."""

    MKDIR = "mkdir"
    FILE = "file"


class TaskStatus(Enum):
    """Lifecycle of a transfer task."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        """Return True once the task can no longer change."""
        return self in (TaskStatus.DONE, TaskStatus.SKIPPED, TaskStatus.FAILED)


class ConflictPolicy(Enum):
    """How to treat a file whose destination already exists."""

    OVERWRITE_ALL = "overwrite_all"
    SKIP_ALL = "skip_all"
    PROMPT_EACH = "prompt_each"
    RESUME_IF_SAME_SIZE = "resume_if_same_size"
    RENAME_NEW = "rename_new"
    ASK_ONCE = "ask_once"


class ConflictChoice(Enum):
    """Answer to one conflict."""

    OVERWRITE = "overwrite"
    SKIP = "skip"
    RESUME = "resume"
    RENAME = "rename"


class CancelPolicy(Enum):
    """What to do with the file being written when a run is cancelled."""

    DELETE_PARTIAL = "delete_partial"
    KEEP_PARTIAL = "keep_partial"


@dataclass
class TransferOptions:
    """Per-run transfer options."""

    conflict_policy: ConflictPolicy = ConflictPolicy.ASK_ONCE
    cancel_policy: CancelPolicy = CancelPolicy.DELETE_PARTIAL
    follow_symlinks: bool = True
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    chunk_size: int = CHUNK_SIZE


@dataclass
class TransferTask:
    """One unit of work in a transfer queue."""

    source: Optional[Entry]
    destination: str
    direction: TransferDirection
    kind: TaskKind
    size: int = 0
    status: TaskStatus = TaskStatus.QUEUED
    reason: str = ""
    bytes_done: int = 0

    @property
    def source_path(self) -> str:
        """Get the source path, or an empty string for directory creation."""
        return self.source.path if self.source is not None else ""

    def start(self) -> None:
        """Mark the task as started."""
        self._require_open()
        self.status = TaskStatus.IN_PROGRESS

    def done(self) -> None:
        """Mark the task as completed."""
        self._require_open()
        self.status = TaskStatus.DONE

    def skip(self, reason: str = "") -> None:
        """Mark the task as skipped."""
        self._require_open()
        self.status = TaskStatus.SKIPPED
        self.reason = reason

    def fail(self, reason: str) -> None:
        """Mark the task as failed."""
        self._require_open()
        self.status = TaskStatus.FAILED
        self.reason = reason

    def reset(self) -> None:
        """Return an in-progress task to the queue for a retry."""
        if self.status != TaskStatus.IN_PROGRESS:
            raise ValueError(f"Cannot retry a {self.status.value} task")
        self.status = TaskStatus.QUEUED
        self.bytes_done = 0

    def _require_open(self) -> None:
        if self.status.is_terminal:
            raise ValueError(f"Task for {self.destination} is already {self.status.value}")

    def __str__(self) -> str:
        if self.kind == TaskKind.MKDIR:
            return f"mkdir {self.destination}"
        return f"{self.direction.value} {self.source_path} -> {self.destination}"


@dataclass
class TransferQueue:
    """Ordered tasks produced by one enqueue call."""

    tasks: List[TransferTask] = field(default_factory=list)
    cycles: List[str] = field(default_factory=list)
    skipped_symlinks: List[str] = field(default_factory=list)
    unreadable: List[str] = field(default_factory=list)

    def __iter__(self):
        return iter(self.tasks)

    def __len__(self) -> int:
        return len(self.tasks)

    @property
    def total_size(self) -> int:
        """Get the byte size of all file tasks."""
        return sum(task.size for task in self.tasks if task.kind == TaskKind.FILE)

    @property
    def file_tasks(self) -> List[TransferTask]:
        """Get the file tasks in queue order."""
        return [task for task in self.tasks if task.kind == TaskKind.FILE]

    def with_status(self, status: TaskStatus) -> List[TransferTask]:
        """Get tasks currently in a status."""
        return [task for task in self.tasks if task.status == status]

    def report(self) -> "TransferReport":
        """Build a report of the queue's current state."""
        return TransferReport(
            completed=self.with_status(TaskStatus.DONE),
            failed=self.with_status(TaskStatus.FAILED),
            skipped=self.with_status(TaskStatus.SKIPPED),
            unreached=self.with_status(TaskStatus.QUEUED),
            cycles=list(self.cycles),
            skipped_symlinks=list(self.skipped_symlinks),
            unreadable=list(self.unreadable),
        )


@dataclass
class TransferReport:
    """Outcome of a transfer run."""

    completed: List[TransferTask] = field(default_factory=list)
    failed: List[TransferTask] = field(default_factory=list)
    skipped: List[TransferTask] = field(default_factory=list)
    unreached: List[TransferTask] = field(default_factory=list)
    cycles: List[str] = field(default_factory=list)
    skipped_symlinks: List[str] = field(default_factory=list)
    unreadable: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        """Return True when nothing failed and nothing was left behind."""
        return not (self.failed or self.unreached or self.unreadable or self.cancelled)

    def summary(self) -> str:
        """Get a one-line summary for the log panel."""
        text = (
            f"{len(self.completed)} done, {len(self.skipped)} skipped, "
            f"{len(self.failed)} failed, {len(self.unreached)} not started"
        )
        if self.unreadable:
            text += f", {len(self.unreadable)} unreadable"
        if self.cancelled:
            text += " (cancelled)"
        return text
