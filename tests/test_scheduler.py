"""Tests for schedule windows, polling and debouncing."""

import asyncio
import os
import sys
from datetime import datetime

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pagerules.core.models import Schedule
from pagerules.orchestrator.scheduler import (
    Debouncer,
    IntervalPoller,
    day_of_week,
    is_within_schedule,
)


OFFICE_HOURS = Schedule(days_of_week=[1, 2, 3, 4, 5], start_time="09:00", end_time="17:00")


class TestSchedule:
    """Test time window evaluation."""

    def test_day_numbering_starts_on_sunday(self):
        assert day_of_week(datetime(2024, 1, 7)) == 0   # Sunday
        assert day_of_week(datetime(2024, 1, 3)) == 3   # Wednesday
        assert day_of_week(datetime(2024, 1, 6)) == 6   # Saturday

    def test_weekday_inside_window(self):
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 12, 0)) is True

    def test_weekend(self):
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 6, 12, 0)) is False

    def test_outside_hours(self):
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 20, 0)) is False
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 8, 59)) is False

    def test_window_is_inclusive(self):
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 9, 0)) is True
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 17, 0, 59)) is True
        assert is_within_schedule(OFFICE_HOURS, datetime(2024, 1, 3, 17, 1)) is False

    def test_days_only(self):
        schedule = Schedule(days_of_week=[0, 6])
        assert is_within_schedule(schedule, datetime(2024, 1, 7, 3, 0)) is True
        assert is_within_schedule(schedule, datetime(2024, 1, 3, 3, 0)) is False

    def test_window_needs_both_ends(self):
        schedule = Schedule(start_time="09:00")
        assert is_within_schedule(schedule, datetime(2024, 1, 3, 3, 0)) is True

    def test_empty_schedule_always_holds(self):
        assert is_within_schedule(Schedule(), datetime(2024, 1, 6, 23, 59)) is True


class TestDebouncer:
    """Test burst coalescing."""

    @pytest.mark.asyncio
    async def test_burst_fires_once(self):
        calls = []
        debouncer = Debouncer(0.05, lambda: calls.append(1))

        for _ in range(5):
            debouncer.trigger()
            await asyncio.sleep(0.01)
        assert calls == []
        assert debouncer.pending is True

        await asyncio.sleep(0.1)
        assert calls == [1]
        assert debouncer.pending is False

    @pytest.mark.asyncio
    async def test_cancel(self):
        calls = []
        debouncer = Debouncer(0.02, lambda: calls.append(1))

        debouncer.trigger()
        debouncer.cancel()
        await asyncio.sleep(0.05)

        assert calls == []

    @pytest.mark.asyncio
    async def test_callback_error_is_contained(self):
        def broken():
            raise RuntimeError("boom")

        debouncer = Debouncer(0.01, broken)
        debouncer.trigger()
        await asyncio.sleep(0.03)

        debouncer.trigger()
        assert debouncer.pending is True
        debouncer.cancel()


class TestIntervalPoller:
    """Test periodic polling."""

    @pytest.mark.asyncio
    async def test_polls_until_stopped(self):
        calls = []
        poller = IntervalPoller(0.01, lambda: calls.append(1))

        poller.start()
        assert poller.running is True
        await asyncio.sleep(0.06)
        await poller.stop()

        assert len(calls) >= 2
        seen = len(calls)
        await asyncio.sleep(0.03)
        assert len(calls) == seen
        assert poller.running is False

    @pytest.mark.asyncio
    async def test_callback_error_keeps_polling(self):
        calls = []

        def flaky():
            calls.append(1)
            raise RuntimeError("boom")

        poller = IntervalPoller(0.01, flaky)
        poller.start()
        await asyncio.sleep(0.05)
        await poller.stop()

        assert len(calls) >= 2
