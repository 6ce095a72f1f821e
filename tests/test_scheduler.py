"""
Tests for timer handles and periodic tasks.
"""
import pytest
import os
import sys
from unittest.mock import Mock

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import FakeScheduler
from scheduler import CancelToken, PeriodicTask, TimerHandle


class TestTimerHandle:
    def test_cancel_is_idempotent(self):
        stop = Mock()
        handle = TimerHandle(stop)
        handle.cancel()
        handle.cancel()
        stop.assert_called_once()
        assert not handle.active

    def test_stop_failure_is_tolerated(self):
        handle = TimerHandle(Mock(side_effect=RuntimeError("already gone")))
        handle.cancel()
        assert not handle.active


class TestPeriodicTask:
    def test_runs_every_interval(self):
        scheduler = FakeScheduler()
        ticks = []
        task = PeriodicTask(scheduler, 1000, lambda: ticks.append(scheduler.now)).start()
        scheduler.advance(3500)
        assert ticks == [1000, 2000, 3000]
        assert task.running

    def test_cancel_stops_ticks(self):
        scheduler = FakeScheduler()
        ticks = []
        task = PeriodicTask(scheduler, 1000, lambda: ticks.append(1)).start()
        scheduler.advance(1000)
        task.cancel()
        scheduler.advance(5000)
        assert ticks == [1]
        assert not task.running
        assert scheduler.pending() == 0

    def test_token_cancellation(self):
        scheduler = FakeScheduler()
        token = CancelToken()
        ticks = []
        PeriodicTask(scheduler, 500, lambda: ticks.append(1), token=token).start()
        scheduler.advance(500)
        token.cancel()
        scheduler.advance(2000)
        assert ticks == [1]

    def test_failing_callback_keeps_running(self):
        scheduler = FakeScheduler()
        calls = []

        def boom():
            calls.append(1)
            raise ValueError("bad tick")

        PeriodicTask(scheduler, 100, boom).start()
        scheduler.advance(300)
        assert len(calls) == 3

    def test_start_twice_arms_once(self):
        scheduler = FakeScheduler()
        task = PeriodicTask(scheduler, 100, lambda: None)
        task.start()
        task.start()
        assert scheduler.pending() == 1
