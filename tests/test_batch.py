#!/usr/bin/env python3
"""
Unit tests for BatchTimer pacing.

Most tests drive the timer with a fake clock so no real time passes; one
short test checks the real wall-clock behaviour.
"""

import os
import sys
import time
import threading
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from people_sync.batch import BatchTimer


class FakeClock:
    """Clock whose time only moves when sleep is called or advance is used."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds

    def advance(self, seconds):
        self.now += seconds


class TestBatchTimer(unittest.TestCase):
    """Test cases for BatchTimer."""

    def setUp(self):
        self.clock = FakeClock()

    def make_timer(self, batch_size, seconds_per_batch):
        return BatchTimer(batch_size, seconds_per_batch, clock=self.clock, sleep=self.clock.sleep)

    def test_full_batch_passes_without_delay(self):
        """Exactly batch_size calls never wait."""
        timer = self.make_timer(5, 1)

        for _ in range(5):
            timer.wait_on_batch()

        self.assertEqual(self.clock.sleeps, [])

    def test_call_after_full_batch_waits_for_window(self):
        timer = self.make_timer(1, 1)

        timer.wait_on_batch()
        timer.wait_on_batch()

        self.assertAlmostEqual(sum(self.clock.sleeps), 1.0)
        self.assertEqual(self.clock.now, 101.0)

    def test_waits_in_coarse_steps(self):
        timer = self.make_timer(2, 3)

        for _ in range(3):
            timer.wait_on_batch()

        self.assertEqual(self.clock.sleeps, [1.0, 1.0, 1.0])

    def test_partial_step_when_window_nearly_over(self):
        timer = self.make_timer(1, 2)

        timer.wait_on_batch()
        self.clock.advance(1.5)
        timer.wait_on_batch()

        self.assertEqual(self.clock.sleeps, [0.5])

    def test_expired_window_does_not_sleep(self):
        """Work slower than the window means no extra wait."""
        timer = self.make_timer(2, 1)

        timer.wait_on_batch()
        timer.wait_on_batch()
        self.clock.advance(5)
        timer.wait_on_batch()

        self.assertEqual(self.clock.sleeps, [])

    def test_new_window_starts_after_release(self):
        timer = self.make_timer(2, 1)

        for _ in range(5):
            timer.wait_on_batch()

        # Batches [1,2], [3,4], [5]: two waits of one second each
        self.assertAlmostEqual(sum(self.clock.sleeps), 2.0)
        self.assertEqual(timer.counter, 1)
        self.assertEqual(timer.start_time, 102.0)

    def test_tick_alias(self):
        timer = self.make_timer(1, 1)

        timer.tick()
        timer.tick()

        self.assertAlmostEqual(sum(self.clock.sleeps), 1.0)

    def test_zero_window(self):
        timer = self.make_timer(1, 0)

        for _ in range(10):
            timer.wait_on_batch()

        self.assertEqual(self.clock.sleeps, [])

    def test_invalid_arguments(self):
        with self.assertRaises(ValueError):
            BatchTimer(0, 1)
        with self.assertRaises(ValueError):
            BatchTimer(1, -1)

    def test_concurrent_callers_counted_once_each(self):
        timer = BatchTimer(100, 1)
        threads = [threading.Thread(target=timer.wait_on_batch) for _ in range(50)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(timer.counter, 50)

    def test_real_clock_enforces_window(self):
        """With batch size 1 and a one second window, the second call waits about a second."""
        timer = BatchTimer(1, 1)

        start = time.monotonic()
        timer.wait_on_batch()
        timer.wait_on_batch()
        elapsed = time.monotonic() - start

        self.assertGreaterEqual(elapsed, 0.95)


if __name__ == '__main__':
    unittest.main()
