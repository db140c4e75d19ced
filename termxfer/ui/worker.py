"""Background workers that own blocking bridge calls.

Each bridge gets one worker so its operations run one at a time, off the
UI thread. Results come back as messages on the shared channel.
"""

import itertools
import logging
import queue
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

_job_ids = itertools.count(1)


@dataclass
class Job:
    """A unit of work for a worker."""

    label: str
    func: Callable[[], Any]
    on_done: Optional[Callable[[Any], None]] = None
    on_error: Optional[Callable[[Exception], None]] = None
    id: int = field(default_factory=lambda: next(_job_ids))


@dataclass
class Message:
    """Something the UI loop must handle.

    ``kind`` is one of ``done``, ``error``, ``queued``, ``progress``,
    ``task``, ``conflict`` and ``notify``.
    """

    kind: str
    payload: Any = None
    job: Optional[Job] = None


class BridgeWorker(threading.Thread):
    """Runs jobs in submission order and posts their outcome to ``channel``."""

    def __init__(self, name: str, channel: "queue.Queue[Message]") -> None:
        super().__init__(name=f"worker-{name}", daemon=True)
        self.channel = channel
        self._jobs: "queue.Queue[Optional[Job]]" = queue.Queue()
        self._pending = 0
        self._pending_lock = threading.Lock()

    @property
    def busy(self) -> bool:
        """Return True while a job is queued or running."""
        with self._pending_lock:
            return self._pending > 0

    def submit(
        self,
        label: str,
        func: Callable[[], Any],
        on_done: Optional[Callable[[Any], None]] = None,
        on_error: Optional[Callable[[Exception], None]] = None,
    ) -> Job:
        """Queue a job; callbacks run on the UI thread during ``tick``."""
        job = Job(label=label, func=func, on_done=on_done, on_error=on_error)
        with self._pending_lock:
            self._pending += 1
        self._jobs.put(job)
        return job

    def run(self) -> None:
        while True:
            job = self._jobs.get()
            if job is None:
                break
            try:
                result = job.func()
            except Exception as exc:
                logger.debug("%s: job %r failed", self.name, job.label, exc_info=True)
                self.channel.put(Message("error", exc, job))
            else:
                self.channel.put(Message("done", result, job))
            finally:
                with self._pending_lock:
                    self._pending -= 1

    def stop(self, timeout: float = 5.0) -> None:
        """Finish queued jobs, then end the thread."""
        self._jobs.put(None)
        if self.is_alive():
            self.join(timeout)
