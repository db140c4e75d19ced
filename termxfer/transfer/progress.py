"""Aggregate and per-file transfer progress with a sliding-window rate."""

import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Optional, Tuple


@dataclass
class ProgressSnapshot:
    """Immutable view of progress handed to the UI."""

    processed_bytes: int
    total_bytes: int
    ratio: float
    file_name: str
    file_ratio: float
    rate: float
    eta: Optional[float]

    @property
    def percent(self) -> int:
        """Get the aggregate progress as an integer percentage."""
        return int(round(self.ratio * 100))


class TransferProgress:
    """Tracks bytes processed for one transfer run.

    Skipped and failed files count as processed so that the aggregate ratio
    always reaches 1.0 at the end of a run.
    """

    def __init__(
        self,
        total_bytes: int,
        window_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.total_bytes = max(0, int(total_bytes))
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._processed = 0
        self._transferred = 0
        self._file_name = ""
        self._file_size = 0
        self._file_done = 0
        self._samples: Deque[Tuple[float, int]] = deque()

    def start_file(self, name: str, size: int) -> None:
        """Begin tracking a new file."""
        with self._lock:
            self._file_name = name
            self._file_size = max(0, int(size))
            self._file_done = 0

    def advance(self, count: int) -> None:
        """Record ``count`` bytes written for the current file."""
        with self._lock:
            self._processed += count
            self._transferred += count
            self._file_done += count
            now = self._clock()
            self._samples.append((now, self._transferred))
            while self._samples and now - self._samples[0][0] > self.window_seconds:
                self._samples.popleft()

    def account(self, count: int) -> None:
        """Count bytes that will not be written (skipped or failed files)."""
        with self._lock:
            self._processed += max(0, int(count))

    def rewind(self, count: int) -> None:
        """Take back bytes of a file that is about to be retried."""
        with self._lock:
            self._processed = max(0, self._processed - count)
            self._file_done = 0

    @property
    def processed_bytes(self) -> int:
        """Get the bytes written, skipped or failed so far."""
        return self._processed

    @property
    def ratio(self) -> float:
        """Get the aggregate progress in [0, 1]."""
        if self.total_bytes == 0:
            return 1.0
        return min(1.0, self._processed / self.total_bytes)

    @property
    def file_ratio(self) -> float:
        """Get the current file's progress in [0, 1]."""
        if self._file_size == 0:
            return 1.0
        return min(1.0, self._file_done / self._file_size)

    @property
    def rate(self) -> float:
        """Get the transfer rate in bytes per second over the window."""
        with self._lock:
            if len(self._samples) < 2:
                return 0.0
            first_time, first_bytes = self._samples[0]
            last_time, last_bytes = self._samples[-1]
        elapsed = last_time - first_time
        if elapsed <= 0:
            return 0.0
        return (last_bytes - first_bytes) / elapsed

    @property
    def eta(self) -> Optional[float]:
        """Get the estimated seconds remaining, or None if the rate is unknown."""
        rate = self.rate
        if rate <= 0:
            return None
        return max(0, self.total_bytes - self._processed) / rate

    def snapshot(self) -> ProgressSnapshot:
        """Capture the current progress."""
        return ProgressSnapshot(
            processed_bytes=self._processed,
            total_bytes=self.total_bytes,
            ratio=self.ratio,
            file_name=self._file_name,
            file_ratio=self.file_ratio,
            rate=self.rate,
            eta=self.eta,
        )
