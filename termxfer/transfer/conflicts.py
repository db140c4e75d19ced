"""Destination conflict resolution."""

import logging
from typing import Callable, Optional

from ..errors import ConflictUnresolved
from ..host.base import HostBridge
from ..host.models import Entry
from .models import ConflictChoice, ConflictPolicy, TransferTask

logger = logging.getLogger(__name__)

# Called with the task and the existing destination entry.
ConflictPrompt = Callable[[TransferTask, Entry], ConflictChoice]

MAX_RENAME_ATTEMPTS = 1000


class ConflictResolver:
    """Applies a conflict policy for one transfer run."""

    def __init__(
        self,
        policy: ConflictPolicy = ConflictPolicy.ASK_ONCE,
        prompt: Optional[ConflictPrompt] = None,
    ) -> None:
        self.policy = policy
        self.prompt = prompt
        self._remembered: Optional[ConflictChoice] = None

    def resolve(self, task: TransferTask, existing: Entry) -> ConflictChoice:
        """Decide what to do with ``task`` given the existing destination."""
        if self.policy == ConflictPolicy.OVERWRITE_ALL:
            return ConflictChoice.OVERWRITE
        if self.policy == ConflictPolicy.SKIP_ALL:
            return ConflictChoice.SKIP
        if self.policy == ConflictPolicy.RENAME_NEW:
            return ConflictChoice.RENAME
        if self.policy == ConflictPolicy.RESUME_IF_SAME_SIZE:
            return self._resume_choice(task, existing)

        if self.policy == ConflictPolicy.ASK_ONCE and self._remembered is not None:
            choice = self._remembered
        else:
            try:
                choice = self._ask(task, existing)
            except ConflictUnresolved as exc:
                logger.warning("Skipping %s: %s", task.destination, exc)
                return ConflictChoice.SKIP
            if self.policy == ConflictPolicy.ASK_ONCE:
                self._remembered = choice

        if choice == ConflictChoice.RESUME:
            return self._resume_choice(task, existing)
        return choice

    def _ask(self, task: TransferTask, existing: Entry) -> ConflictChoice:
        if self.prompt is None:
            raise ConflictUnresolved(f"{task.destination} exists and no prompt is available")
        choice = self.prompt(task, existing)
        if not isinstance(choice, ConflictChoice):
            raise ConflictUnresolved(f"No answer for {task.destination}")
        return choice

    @staticmethod
    def _resume_choice(task: TransferTask, existing: Entry) -> ConflictChoice:
        # An equal size is taken as a completed earlier run.
        if existing.size == task.size:
            return ConflictChoice.SKIP
        return ConflictChoice.OVERWRITE


def disambiguate(bridge: HostBridge, path: str) -> str:
    """Find a free name next to ``path``: ``report (1).txt``, ``report (2).txt``..."""
    parent = bridge.dirname(path)
    name = bridge.basename(path)
    stem, dot, extension = name.rpartition(".")
    if not stem:
        stem, dot, extension = name, "", ""
    for counter in range(1, MAX_RENAME_ATTEMPTS + 1):
        candidate = bridge.join(parent, f"{stem} ({counter}){dot}{extension}")
        if not bridge.exists(candidate):
            return candidate
    raise ConflictUnresolved(f"No free name found for {path}")
