"""Runs transfer queues between two host bridges."""

import logging
import threading
from typing import Callable, List, Optional

from ..errors import (
    ConflictUnresolved,
    HostConnectionError,
    HostError,
    NotFoundError,
    TransferAborted,
)
from ..host.base import HostBridge
from ..host.models import Entry
from .conflicts import ConflictPrompt, ConflictResolver, disambiguate
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

logger = logging.getLogger(__name__)


class TransferCancelled(Exception):
    """Raised inside a task when the cancel event is observed between chunks."""


class TransferEngine:
    """Copies queued tasks from a source bridge to a destination bridge.

    Per-task host errors fail only that task. A lost connection gets one
    reconnect and one retry of the task before the run is aborted.
    """

    def __init__(
        self,
        source: HostBridge,
        destination: HostBridge,
        options: Optional[TransferOptions] = None,
        prompt: Optional[ConflictPrompt] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[ProgressSnapshot], None]] = None,
        on_task: Optional[Callable[[TransferTask], None]] = None,
    ) -> None:
        self.source = source
        self.destination = destination
        self.options = options or TransferOptions()
        self.prompt = prompt
        self.cancel_event = cancel_event or threading.Event()
        self.on_progress = on_progress
        self.on_task = on_task
        self.progress: Optional[TransferProgress] = None

    def enqueue(
        self,
        entries: List[Entry],
        destination_dir: str,
        direction: TransferDirection,
    ) -> TransferQueue:
        """Expand the selected entries into an ordered queue."""
        return build_queue(
            self.source, self.destination, entries, destination_dir, direction, self.options
        )

    def cancel(self) -> None:
        """Ask the running transfer to stop at the next checkpoint."""
        self.cancel_event.set()

    def run(
        self, queue: TransferQueue, conflict_policy: Optional[ConflictPolicy] = None
    ) -> TransferReport:
        """Process the queue in order and return the run report."""
        policy = conflict_policy or self.options.conflict_policy
        resolver = ConflictResolver(policy, self.prompt)
        self.progress = TransferProgress(queue.total_size)
        cancelled = False

        logger.info(
            "Starting transfer of %d tasks (%d bytes), conflict policy %s",
            len(queue),
            queue.total_size,
            policy.value,
        )
        for task in queue.tasks:
            if self.cancel_event.is_set():
                cancelled = True
                break
            if task.status != TaskStatus.QUEUED:
                continue
            try:
                self._run_with_retry(task, resolver)
            except TransferCancelled:
                cancelled = True
                break
            except HostConnectionError as exc:
                report = queue.report()
                logger.error("Transfer aborted: %s (%s)", exc, report.summary())
                raise TransferAborted(f"Transfer aborted: {exc}", report) from exc

        report = queue.report()
        report.cancelled = cancelled
        logger.info("Transfer finished: %s", report.summary())
        return report

    def _run_with_retry(self, task: TransferTask, resolver: ConflictResolver) -> None:
        try:
            self._run_task(task, resolver)
            return
        except HostConnectionError as exc:
            logger.warning("Connection lost during %s: %s; reconnecting once", task, exc)
            self._rewind(task)

        try:
            self._reconnect()
            self._run_task(task, resolver)
        except HostConnectionError as exc:
            if not task.status.is_terminal:
                task.fail(str(exc))
                self._notify(task)
            raise

    def _rewind(self, task: TransferTask) -> None:
        if self.progress is not None:
            self.progress.rewind(task.bytes_done)
        task.reset()

    def _reconnect(self) -> None:
        bridges = [b for b in (self.source, self.destination) if not b.is_connected]
        if not bridges:
            bridges = [b for b in (self.source, self.destination) if not b.is_localhost]
        for bridge in bridges:
            bridge.reconnect()

    def _run_task(self, task: TransferTask, resolver: ConflictResolver) -> None:
        task.start()
        self._notify(task)
        try:
            if task.kind == TaskKind.MKDIR:
                self._make_directory(task)
            else:
                self._copy_file(task, resolver)
        except HostConnectionError:
            raise
        except HostError as exc:
            logger.error("%s failed: %s", task, exc)
            task.fail(str(exc))
            self._account_rest(task)
        self._notify(task)

    def _make_directory(self, task: TransferTask) -> None:
        existing = self._stat_destination(task.destination)
        if existing is None:
            self.destination.create_dir(task.destination)
        elif not existing.is_dir:
            task.fail(f"{task.destination} exists and is not a directory")
            return
        task.done()

    def _copy_file(self, task: TransferTask, resolver: ConflictResolver) -> None:
        existing = self._stat_destination(task.destination)
        if existing is not None:
            if existing.is_dir:
                task.fail(f"{task.destination} is a directory")
                self._account_rest(task)
                return
            choice = resolver.resolve(task, existing)
            if choice == ConflictChoice.SKIP:
                logger.info("Skipping existing %s", task.destination)
                task.skip("destination exists")
                self._account_rest(task)
                return
            if choice == ConflictChoice.RENAME:
                try:
                    task.destination = disambiguate(self.destination, task.destination)
                except ConflictUnresolved as exc:
                    task.skip(str(exc))
                    self._account_rest(task)
                    return

        self._stream(task)
        # The file may have shrunk since it was sized.
        self._account_rest(task)
        task.done()
        logger.info("Transferred %s (%d bytes)", task.destination, task.bytes_done)

    def _stream(self, task: TransferTask) -> None:
        progress = self.progress
        if progress is not None:
            progress.start_file(self.destination.basename(task.destination), task.size)

        with self.source.open_read(task.source_path) as reader:
            writer = self.destination.open_write(task.destination)
            try:
                while True:
                    if self.cancel_event.is_set():
                        raise TransferCancelled()
                    chunk = reader.read(self.options.chunk_size)
                    if not chunk:
                        break
                    writer.write(chunk)
                    task.bytes_done += len(chunk)
                    if progress is not None:
                        progress.advance(len(chunk))
                        if self.on_progress is not None:
                            self.on_progress(progress.snapshot())
            except TransferCancelled:
                self._abandon(task, writer)
                raise
            except BaseException:
                self._close_quietly(writer, task)
                raise
            writer.close()

    def _abandon(self, task: TransferTask, writer) -> None:
        self._close_quietly(writer, task)
        task.fail("cancelled")
        self._notify(task)
        if self.options.cancel_policy == CancelPolicy.DELETE_PARTIAL:
            try:
                self.destination.remove(task.destination)
                logger.info("Removed partial file %s", task.destination)
            except HostError as exc:
                logger.warning("Could not remove partial file %s: %s", task.destination, exc)
        else:
            logger.info("Kept partial file %s (%d bytes)", task.destination, task.bytes_done)

    @staticmethod
    def _close_quietly(writer, task: TransferTask) -> None:
        try:
            writer.close()
        except HostError as exc:
            logger.debug("Closing %s after an interrupted write failed: %s", task.destination, exc)

    def _stat_destination(self, path: str) -> Optional[Entry]:
        try:
            return self.destination.stat(path)
        except NotFoundError:
            return None

    def _account_rest(self, task: TransferTask) -> None:
        if self.progress is not None and task.kind == TaskKind.FILE:
            self.progress.account(task.size - task.bytes_done)

    def _notify(self, task: TransferTask) -> None:
        if self.on_task is not None:
            self.on_task(task)
