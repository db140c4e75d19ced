from .conflicts import ConflictResolver
from .engine import TransferEngine
from .models import (
    CancelPolicy,
    ConflictChoice,
    ConflictPolicy,
    TaskKind,
    TaskStatus,
    TransferDirection,
    TransferOptions,
    TransferQueue,
    TransferReport,
    TransferTask,
)
from .progress import ProgressSnapshot, TransferProgress
from .walker import build_queue

__all__ = [
    "CancelPolicy",
    "ConflictChoice",
    "ConflictPolicy",
    "ConflictResolver",
    "ProgressSnapshot",
    "TaskKind",
    "TaskStatus",
    "TransferDirection",
    "TransferEngine",
    "TransferOptions",
    "TransferProgress",
    "TransferQueue",
    "TransferReport",
    "TransferTask",
    "build_queue",
]
