"""In-memory log handler feeding the UI log panel."""

import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Deque, List

LOG_BUFFER_SIZE = 256


@dataclass
class LogLine:
    """One record as shown in the log panel."""

    time: datetime
    level: str
    message: str

    def __str__(self) -> str:
        return f"{self.time:%H:%M:%S} [{self.level}] {self.message}"


class LogBuffer(logging.Handler):
    """Keeps the most recent records; older ones are dropped."""

    def __init__(self, capacity: int = LOG_BUFFER_SIZE, level: int = logging.INFO) -> None:
        super().__init__(level)
        self._records: Deque[LogLine] = deque(maxlen=capacity)
        self._records_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = LogLine(
                time=datetime.fromtimestamp(record.created),
                level=record.levelname,
                message=record.getMessage(),
            )
        except Exception:
            self.handleError(record)
            return
        with self._records_lock:
            self._records.append(line)

    def lines(self) -> List[LogLine]:
        """Get buffered lines, oldest first."""
        with self._records_lock:
            return list(self._records)

    def clear(self) -> None:
        """Drop all buffered lines."""
        with self._records_lock:
            self._records.clear()
