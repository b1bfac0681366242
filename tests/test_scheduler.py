"""Tests del scheduler de tareas nombradas y del polling scheduler."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from progress_engine.domain.models import PollingMode
from progress_engine.polling.scheduler import (
    AGGRESSIVE_POLL_TASK,
    NORMAL_POLL_TASK,
    PollingScheduler,
    TaskScheduler,
)


# =============================================================================
# TASK SCHEDULER
# =============================================================================

class TestTaskScheduler:

    @pytest.mark.asyncio
    async def test_runs_periodically(self):
        scheduler = TaskScheduler()
        fn = MagicMock()

        scheduler.schedule("tick", 0.01, fn, run_immediately=True)
        await asyncio.sleep(0.05)
        scheduler.cancel_all()

        assert fn.call_count >= 2
        assert scheduler.stats["runs"]["tick"] == fn.call_count

    @pytest.mark.asyncio
    async def test_first_run_waits_for_interval(self):
        scheduler = TaskScheduler()
        fn = MagicMock()

        scheduler.schedule("slow", 10, fn)
        await asyncio.sleep(0.01)
        scheduler.cancel_all()

        fn.assert_not_called()

    @pytest.mark.asyncio
    async def test_seconds_until_tracks_next_fire(self):
        scheduler = TaskScheduler()

        scheduler.schedule("poll", 10, MagicMock())
        remaining = scheduler.seconds_until("poll")
        assert remaining is not None and 9.5 < remaining <= 10

        assert scheduler.cancel("poll") is True
        assert scheduler.seconds_until("poll") is None
        assert scheduler.seconds_until("missing") is None

    @pytest.mark.asyncio
    async def test_seconds_until_resets_after_each_run(self):
        scheduler = TaskScheduler()

        scheduler.schedule("tick", 0.2, MagicMock(), run_immediately=True)
        await asyncio.sleep(0.05)
        remaining = scheduler.seconds_until("tick")
        scheduler.cancel_all()

        assert remaining is not None and 0.1 < remaining <= 0.2

    @pytest.mark.asyncio
    async def test_rescheduling_replaces_task(self):
        scheduler = TaskScheduler()
        old = MagicMock()
        new = MagicMock()

        scheduler.schedule("poll", 0.01, old)
        scheduler.schedule("poll", 0.01, new)
        await asyncio.sleep(0.05)
        scheduler.cancel_all()

        assert scheduler.names == []
        old.assert_not_called()
        assert new.call_count >= 1

    @pytest.mark.asyncio
    async def test_at_most_one_task_per_name(self):
        scheduler = TaskScheduler()
        for _ in range(3):
            scheduler.schedule("poll", 10, MagicMock())
        scheduler.schedule("health", 10, MagicMock())

        assert scheduler.names == ["health", "poll"]
        scheduler.cancel_all()

    @pytest.mark.asyncio
    async def test_cancel_stops_future_runs(self):
        scheduler = TaskScheduler()
        fn = MagicMock()

        scheduler.schedule("tick", 0.01, fn, run_immediately=True)
        await asyncio.sleep(0.005)
        assert scheduler.cancel("tick") is True
        calls = fn.call_count
        await asyncio.sleep(0.03)

        assert fn.call_count == calls
        assert scheduler.is_scheduled("tick") is False
        assert scheduler.cancel("tick") is False

    def test_invalid_interval(self):
        with pytest.raises(ValueError):
            TaskScheduler().schedule("bad", 0, MagicMock())

    @pytest.mark.asyncio
    async def test_failing_callback_keeps_running(self):
        scheduler = TaskScheduler()
        fn = MagicMock(side_effect=RuntimeError("boom"))

        scheduler.schedule("flaky", 0.01, fn, run_immediately=True)
        await asyncio.sleep(0.05)
        scheduler.cancel_all()

        assert fn.call_count >= 2
        assert scheduler.stats["failures"]["flaky"] == fn.call_count

    @pytest.mark.asyncio
    async def test_failing_coroutine_is_counted(self):
        scheduler = TaskScheduler()
        fn = AsyncMock(side_effect=RuntimeError("boom"))

        scheduler.schedule("flaky", 10, fn, run_immediately=True)
        await asyncio.sleep(0.01)
        await scheduler.drain(1)
        scheduler.cancel_all()

        assert scheduler.stats["failures"]["flaky"] == 1

    @pytest.mark.asyncio
    async def test_cancel_does_not_abort_inflight_run(self):
        scheduler = TaskScheduler()
        gate = asyncio.Event()
        finished = []

        async def slow_resync():
            await gate.wait()
            finished.append(True)

        scheduler.schedule("resync", 10, slow_resync, run_immediately=True)
        await asyncio.sleep(0.01)
        assert scheduler.inflight == 1

        scheduler.cancel("resync")
        gate.set()
        await scheduler.drain(1)

        assert finished == [True]
        assert scheduler.inflight == 0


# =============================================================================
# POLLING SCHEDULER
# =============================================================================

class TestPollingScheduler:

    @pytest.mark.asyncio
    async def test_start_schedules_normal_poll(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock())

        polling.start()

        assert polling.is_running is True
        assert polling.mode is PollingMode.NORMAL
        assert tasks.names == [NORMAL_POLL_TASK]
        polling.stop()

    @pytest.mark.asyncio
    async def test_aggressive_adds_fast_poll(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock())
        polling.start()

        polling.set_mode(PollingMode.AGGRESSIVE)

        assert tasks.names == [AGGRESSIVE_POLL_TASK, NORMAL_POLL_TASK]
        assert polling.effective_interval == 120
        polling.stop()

    @pytest.mark.asyncio
    async def test_real_time_cancels_fast_poll_keeps_baseline(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock())
        polling.start()
        polling.set_mode(PollingMode.AGGRESSIVE)

        polling.set_mode(PollingMode.REAL_TIME)

        assert tasks.names == [NORMAL_POLL_TASK]
        assert polling.effective_interval == 300
        polling.stop()

    @pytest.mark.asyncio
    async def test_seconds_until_next_poll_uses_real_timers(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock(), normal_interval=0.2, aggressive_interval=10)
        assert polling.seconds_until_next_poll() is None

        polling.start()
        await asyncio.sleep(0.1)
        polling.set_mode(PollingMode.AGGRESSIVE)
        remaining = polling.seconds_until_next_poll()
        polling.stop()

        # normal-poll vence antes que el aggressive-poll recién programado
        assert remaining is not None and remaining < 0.15
        assert polling.seconds_until_next_poll() is None

    @pytest.mark.asyncio
    async def test_aggressive_poll_triggers_resync(self):
        resync = AsyncMock(return_value=True)
        polling = PollingScheduler(TaskScheduler(), resync, normal_interval=10, aggressive_interval=0.01)
        polling.start()

        polling.set_mode(PollingMode.AGGRESSIVE)
        await asyncio.sleep(0.05)
        polling.stop()

        resync.assert_any_await("aggressive")

    @pytest.mark.asyncio
    async def test_normal_poll_triggers_resync(self):
        resync = AsyncMock(return_value=True)
        polling = PollingScheduler(TaskScheduler(), resync, normal_interval=0.01)
        polling.start()

        await asyncio.sleep(0.05)
        polling.stop()

        resync.assert_any_await("normal")

    @pytest.mark.asyncio
    async def test_stop_cancels_everything(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock())
        polling.start()
        polling.set_mode(PollingMode.AGGRESSIVE)

        polling.stop()

        assert tasks.names == []
        assert polling.mode is PollingMode.NORMAL
        assert polling.is_running is False

    def test_mode_change_before_start_schedules_nothing(self):
        tasks = TaskScheduler()
        polling = PollingScheduler(tasks, AsyncMock())

        polling.set_mode(PollingMode.AGGRESSIVE)

        assert tasks.names == []
        assert polling.mode is PollingMode.AGGRESSIVE

    def test_intervals(self):
        polling = PollingScheduler(TaskScheduler(), AsyncMock(), normal_interval=300, aggressive_interval=120)

        assert polling.interval_for(PollingMode.NORMAL) == 300
        assert polling.interval_for(PollingMode.AGGRESSIVE) == 120
        assert polling.interval_for(PollingMode.REAL_TIME) is None
