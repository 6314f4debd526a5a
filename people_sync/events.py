"""
Event log for the apply phase.

Destination workers report every write attempt as an ``EventLogItem``. Items
travel through a bounded queue to a single consumer thread that logs them and
raises an email alert for alert-level items.
"""

import queue
import logging
import threading
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

# Syslog priorities
EMERG = 0
ALERT = 1
CRIT = 2
ERR = 3
WARNING = 4
NOTICE = 5
INFO = 6
DEBUG = 7

LEVEL_NAMES = {
    EMERG: 'Emerg',
    ALERT: 'Alert',
    CRIT: 'Critical',
    ERR: 'Error',
    WARNING: 'Warning',
    NOTICE: 'Notice',
    INFO: 'Info',
    DEBUG: 'Debug',
}

LOGGING_LEVELS = {
    EMERG: logging.CRITICAL,
    ALERT: logging.CRITICAL,
    CRIT: logging.CRITICAL,
    ERR: logging.ERROR,
    WARNING: logging.WARNING,
    NOTICE: logging.INFO,
    INFO: logging.INFO,
    DEBUG: logging.DEBUG,
}

ALERT_LEVELS = (EMERG, ALERT)

DEFAULT_BUFFER_SIZE = 50

_CLOSED = object()


class EventLogItem:
    """A message with a syslog severity."""

    def __init__(self, message: str, level: int = INFO):
        self.message = message
        self.level = level

    @property
    def is_alert(self) -> bool:
        return self.level in ALERT_LEVELS

    def __str__(self):
        return f"{LEVEL_NAMES.get(self.level, 'Unknown')}: {self.message}"

    def __repr__(self):
        return f"EventLogItem(message={self.message!r}, level={self.level})"


class EventLog:
    """
    Multi-producer, single-consumer event channel.

    The consumer runs from ``start()`` until ``close()``, so producers only
    block while the consumer catches up on a full buffer.
    """

    def __init__(self, log: Optional[logging.Logger] = None,
                 alert: Optional[Callable[[str], Any]] = None,
                 maxsize: int = DEFAULT_BUFFER_SIZE):
        self.log = log or logger
        self.alert = alert
        self._queue = queue.Queue(maxsize=maxsize)
        self._consumer = None
        self.counts: Dict[int, int] = {}
        self.items = []

    def start(self) -> 'EventLog':
        if self._consumer is None:
            self._consumer = threading.Thread(target=self._consume, name='event-log', daemon=True)
            self._consumer.start()
        return self

    def put(self, item: EventLogItem):
        self._queue.put(item)

    def info(self, message: str):
        self.put(EventLogItem(message, INFO))

    def close(self):
        """Stop accepting items and wait until every queued item is processed."""
        if self._consumer is None:
            return
        self._queue.put(_CLOSED)
        self._consumer.join()
        self._consumer = None

    def _consume(self):
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                break
            self.process(item)

    def process(self, item: EventLogItem):
        self.items.append(item)
        self.counts[item.level] = self.counts.get(item.level, 0) + 1
        self.log.log(LOGGING_LEVELS.get(item.level, logging.INFO), str(item))

        if item.is_alert and self.alert:
            try:
                self.alert(str(item))
            except Exception as e:
                self.log.error(f"Failed to send alert for event: {e}")

    def error_count(self) -> int:
        return sum(count for level, count in self.counts.items() if level <= ERR)

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
