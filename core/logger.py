import logging
from collections import deque
from typing import Deque, Optional

from config import config

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class ActivityLogHandler(logging.Handler):
    """Logging handler that keeps recent program activity in memory."""

    def __init__(self, buffer: Optional[Deque[str]] = None, maxlen: int = 1000):
        super().__init__()
        self.buffer: Deque[str] = buffer if buffer is not None else deque(maxlen=maxlen)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.buffer.append(self.format(record))
        except Exception:
            self.handleError(record)

    def tagged(self, tag: str):
        """Buffered lines whose message carries [tag]."""
        marker = f"[{tag}]"
        return [line for line in self.buffer if marker in line]


def setup_logging(level: Optional[str] = None, activity: Optional[ActivityLogHandler] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or config.log_level).upper(), logging.INFO),
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
    )
    if activity is not None:
        activity.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        logging.getLogger().addHandler(activity)
