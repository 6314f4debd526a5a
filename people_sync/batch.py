"""
Batch pacing for destination writes.

Destination APIs enforce request quotas per time window. ``BatchTimer`` lets a
burst of ``batch_size`` operations through immediately and then holds the
next operation until ``seconds_per_batch`` have passed since the burst began.
"""

import time
import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0


class BatchTimer:
    """
    Time limited batch enforcer.

    Call ``wait_on_batch`` once before dispatching each unit of work.
    """

    def __init__(self, batch_size: int, seconds_per_batch: float,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], None] = time.sleep):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        if seconds_per_batch < 0:
            raise ValueError("seconds_per_batch cannot be negative")

        self.batch_size = batch_size
        self.seconds_per_batch = seconds_per_batch
        self._clock = clock
        self._sleep = sleep
        self._lock = threading.Lock()
        self.counter = 0
        self.start_time = 0.0
        self.end_time = 0.0
        self.init(batch_size, seconds_per_batch)

    def init(self, batch_size: int, seconds_per_batch: float):
        """Start a new batch window anchored at the current time."""
        self.batch_size = batch_size
        self.seconds_per_batch = seconds_per_batch
        self.start_time = self._clock()
        self.end_time = self.start_time + seconds_per_batch
        self.counter = 0

    def wait_on_batch(self):
        """
        Count one unit of work, blocking first if the current batch is full.

        Once the window has already expired no sleep happens; the new batch is
        anchored at the time the full batch was released.
        """
        with self._lock:
            self.counter += 1
            if self.counter <= self.batch_size:
                return

            remaining = self.end_time - self._clock()
            if remaining > 0:
                logger.debug(f"Batch of {self.batch_size} full, waiting {remaining:.1f} seconds")
            while remaining > 0:
                self._sleep(min(POLL_INTERVAL_SECONDS, remaining))
                remaining = self.end_time - self._clock()

            self.init(self.batch_size, self.seconds_per_batch)
            self.counter = 1

    tick = wait_on_batch
