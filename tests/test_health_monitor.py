"""Tests del health monitor y su efecto sobre el modo de polling."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from progress_engine.domain.models import HealthState, PollingMode
from progress_engine.monitoring.health import HealthMonitor, classify
from progress_engine.polling.scheduler import PollingScheduler, TaskScheduler
from progress_engine.push.cache import PushProgressCache
from progress_engine.push.channel import InMemoryPushChannel
from progress_engine.push.validators import validate_progress_event


@pytest.fixture
def channel():
    return InMemoryPushChannel(connected=True)


@pytest.fixture
def cache(clock):
    return PushProgressCache(clock)


@pytest.fixture
def polling():
    # Sin start(): los cambios de modo no programan tareas
    return PollingScheduler(TaskScheduler(), AsyncMock())


@pytest.fixture
def monitor(channel, cache, polling, clock):
    mon = HealthMonitor(channel, cache, polling, clock=clock, silence_threshold_seconds=180)
    mon.reset(clock.now)
    return mon


def push_event(cache, area="A"):
    result = validate_progress_event({"area_code": area, "total_processed": 1})
    cache.on_event(result.payload)


# =============================================================================
# CLASIFICACIÓN
# =============================================================================

class TestClassify:

    def test_disconnected_wins(self):
        assert classify(False, 0, 180) is HealthState.DISCONNECTED

    def test_silence_over_threshold(self):
        assert classify(True, 181, 180) is HealthState.DEGRADED

    def test_silence_at_threshold_is_connected(self):
        assert classify(True, 180, 180) is HealthState.CONNECTED


# =============================================================================
# TICKS
# =============================================================================

class TestHealthMonitorTick:

    def test_initial_state_connected(self, monitor, polling):
        assert monitor.state is HealthState.CONNECTED
        assert monitor.tick() is HealthState.CONNECTED
        assert polling.mode is PollingMode.NORMAL

    def test_silence_counts_from_session_start(self, monitor, clock):
        clock.advance(100)
        assert monitor.silence_seconds() == 100

    def test_silence_without_baseline_is_infinite(self, channel, cache, polling, clock):
        mon = HealthMonitor(channel, cache, polling, clock=clock)
        assert mon.silence_seconds() == float("inf")

    def test_four_minutes_silence_degrades_and_goes_aggressive(self, monitor, polling, clock):
        clock.advance(240)

        assert monitor.tick() is HealthState.DEGRADED
        assert polling.mode is PollingMode.AGGRESSIVE

    def test_tick_is_idempotent(self, monitor, polling, clock):
        clock.advance(240)
        monitor.tick()
        polling.set_mode = MagicMock()

        monitor.tick()

        polling.set_mode.assert_not_called()
        assert monitor.status()["transitions"] == 1

    def test_recovery_reverts_to_real_time(self, monitor, polling, cache, clock):
        clock.advance(240)
        monitor.tick()
        assert polling.mode is PollingMode.AGGRESSIVE

        push_event(cache)
        clock.advance(10)

        assert monitor.tick() is HealthState.CONNECTED
        assert polling.mode is PollingMode.REAL_TIME

    def test_disconnect_goes_aggressive(self, monitor, channel, polling):
        channel.set_connected(False)

        assert monitor.tick() is HealthState.DISCONNECTED
        assert polling.mode is PollingMode.AGGRESSIVE

    def test_degraded_to_disconnected_keeps_aggressive(self, monitor, channel, polling, clock):
        clock.advance(240)
        monitor.tick()
        channel.set_connected(False)

        assert monitor.tick() is HealthState.DISCONNECTED
        assert polling.mode is PollingMode.AGGRESSIVE
        assert monitor.status()["transitions"] == 2

    def test_recent_event_keeps_connected(self, monitor, cache, clock):
        clock.advance(170)
        push_event(cache)
        clock.advance(170)

        assert monitor.tick() is HealthState.CONNECTED

    def test_reset_returns_to_connected(self, monitor, channel, clock):
        channel.set_connected(False)
        monitor.tick()

        monitor.reset(clock.now)

        assert monitor.state is HealthState.CONNECTED
        assert monitor.status()["transitions"] == 0

    def test_status_shape(self, monitor, clock):
        clock.advance(30)
        monitor.tick()
        status = monitor.status()

        assert status["state"] == "connected"
        assert status["connected"] is True
        assert status["channel"] == "memory"
        assert status["silence_seconds"] == 30.0
        assert status["last_check_at"] == clock.now.isoformat()
