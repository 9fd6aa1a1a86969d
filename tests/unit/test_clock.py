"""Unit tests for SystemClock and SimClock."""

from __future__ import annotations

import time

import pytest

from nsalloc.core.clock import Clock, SimClock, SystemClock


class TestSystemClock:
    def test_close_to_wall_time(self):
        assert abs(SystemClock().now() - time.time()) < 1.0

    def test_monotonic(self):
        clock = SystemClock()
        a = clock.now()
        b = clock.now()
        assert b >= a

    def test_protocol(self):
        assert isinstance(SystemClock(), Clock)


class TestSimClock:
    def test_starts_at_epoch(self):
        assert SimClock(start_epoch=10.0).now() == 10.0

    def test_step(self):
        clock = SimClock(start_epoch=0.0)
        clock.step(2.5)
        clock.step(0.5)
        assert clock.now() == 3.0

    def test_negative_step_rejected(self):
        with pytest.raises(ValueError):
            SimClock().step(-1.0)

    def test_set_time(self):
        clock = SimClock(start_epoch=100.0)
        clock.set_time(150.0)
        assert clock.now() == 150.0
        assert clock.start_epoch == 100.0

    def test_set_time_before_start(self):
        with pytest.raises(ValueError):
            SimClock(start_epoch=100.0).set_time(50.0)

    def test_protocol(self):
        assert isinstance(SimClock(), Clock)
