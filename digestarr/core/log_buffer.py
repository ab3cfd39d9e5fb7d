"""Logging setup with an in-memory ring buffer for the web UI."""

import logging
import threading
from collections import deque

MAX_LOG_LINES = 500

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class RingBufferHandler(logging.Handler):
    """Keep the last ``capacity`` formatted records in memory."""

    def __init__(self, capacity: int = MAX_LOG_LINES) -> None:
        super().__init__()
        self._lines: deque[str] = deque(maxlen=capacity)
        self._lines_lock = threading.Lock()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:
            self.handleError(record)
            return
        with self._lines_lock:
            self._lines.append(line)

    def lines(self) -> list[str]:
        with self._lines_lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lines_lock:
            self._lines.clear()


log_buffer = RingBufferHandler()


def setup_logging(level: str = "info") -> None:
    """Configure the root logger for console output plus the ring buffer."""
    root = logging.getLogger()
    root.setLevel(level.upper())

    formatter = logging.Formatter(LOG_FORMAT)
    log_buffer.setFormatter(formatter)
    if log_buffer not in root.handlers:
        root.addHandler(log_buffer)

    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        root.addHandler(console)

    # httpx logs every request at info level
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("apscheduler").setLevel(logging.WARNING)
