"""Logging setup: stdout plus a bounded in-memory buffer served at /api/logs."""

import sys
import logging
import threading
from collections import deque
from datetime import datetime

LOGGER_NAME = 'adfetch'
LOG_FORMAT = '%(asctime)s %(levelname)-7s %(name)s: %(message)s'


class LogBuffer(logging.Handler):
    """Ring buffer of recent log records as {type, message, timestamp} dicts."""

    def __init__(self, maxlen=1000, level=logging.INFO):
        super().__init__(level)
        self._entries = deque(maxlen=maxlen)
        self._entries_lock = threading.Lock()

    def emit(self, record):
        if record.levelno >= logging.ERROR:
            kind = 'error'
        elif record.levelno >= logging.WARNING:
            kind = 'warning'
        else:
            kind = 'info'
        try:
            message = record.getMessage()
        except Exception:
            self.handleError(record)
            return
        entry = {
            'type': kind,
            'message': message,
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
        }
        with self._entries_lock:
            self._entries.append(entry)

    def entries(self):
        with self._entries_lock:
            return list(self._entries)

    def clear(self):
        with self._entries_lock:
            self._entries.clear()


def setup_logging(buffer_size=1000, level=logging.INFO, stream=None):
    """Attach a stdout handler and a fresh LogBuffer to the adfetch logger."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    for handler in list(logger.handlers):
        if isinstance(handler, LogBuffer) or getattr(handler, '_adfetch_stream', False):
            logger.removeHandler(handler)

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(logging.Formatter(LOG_FORMAT))
    console._adfetch_stream = True
    logger.addHandler(console)

    buffer = LogBuffer(maxlen=buffer_size, level=level)
    logger.addHandler(buffer)
    return buffer
