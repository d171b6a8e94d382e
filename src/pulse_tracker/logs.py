"""Package logger plus a circular buffer of recent records for the API."""

import logging
from collections import deque
from datetime import datetime
from typing import Deque

LOGGER_NAME = "pulse_tracker"
LOG_BUFFER_SIZE = 100

logger = logging.getLogger(LOGGER_NAME)
logger.setLevel(logging.INFO)

log_buffer: Deque[dict] = deque(maxlen=LOG_BUFFER_SIZE)


class LogBufferHandler(logging.Handler):
    """Custom logging handler that captures logs to circular buffer."""

    def __init__(self, buffer: Deque[dict] = log_buffer):
        super().__init__()
        self.buffer = buffer

    def emit(self, record: logging.LogRecord):
        try:
            self.buffer.append({
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            })
        except Exception:
            self.handleError(record)


def install_buffer_handler() -> LogBufferHandler:
    """Attach the buffer handler once to the package and uvicorn loggers."""
    for handler in logger.handlers:
        if isinstance(handler, LogBufferHandler):
            return handler
    handler = LogBufferHandler()
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logging.getLogger("uvicorn").addHandler(handler)
    return handler


def recent_logs(limit: int = 50) -> list[dict]:
    limit = max(0, min(limit, LOG_BUFFER_SIZE))
    if limit == 0:
        return []
    return list(log_buffer)[-limit:]
