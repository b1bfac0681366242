"""Health monitor del canal push.

Máquina de estados {CONNECTED, DEGRADED, DISCONNECTED} evaluada en cada tick:

- DISCONNECTED si el transporte reporta desconexión
- DEGRADED si el silencio desde el último evento supera el umbral
- CONNECTED en otro caso

Solo hay transición cuando cambia la clasificación (ticks idempotentes).
Al degradarse se pide polling AGGRESSIVE; al recuperarse desde AGGRESSIVE,
REAL_TIME.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from common.timeutils import Clock, utc_now

from ..domain.models import HealthState, PollingMode
from ..polling.scheduler import PollingScheduler
from ..push.cache import PushProgressCache
from ..push.channel import PushChannel
from . import metrics

logger = logging.getLogger(__name__)

DEFAULT_SILENCE_THRESHOLD_SECONDS = 180.0


def classify(connected: bool, silence_seconds: float, threshold_seconds: float) -> HealthState:
    """Clasifica la salud del canal."""
    if not connected:
        return HealthState.DISCONNECTED
    if silence_seconds > threshold_seconds:
        return HealthState.DEGRADED
    return HealthState.CONNECTED


class HealthMonitor:
    """Vigila conectividad y recencia del canal push."""

    def __init__(
        self,
        channel: PushChannel,
        cache: PushProgressCache,
        polling: PollingScheduler,
        clock: Clock = utc_now,
        silence_threshold_seconds: float = DEFAULT_SILENCE_THRESHOLD_SECONDS,
    ):
        self._channel = channel
        self._cache = cache
        self._polling = polling
        self._clock = clock
        self._threshold = silence_threshold_seconds

        self._state = HealthState.CONNECTED
        self._baseline: Optional[datetime] = None
        self._last_check_at: Optional[datetime] = None
        self._transitions = 0

    @property
    def state(self) -> HealthState:
        return self._state

    def reset(self, now: Optional[datetime] = None) -> None:
        """Vuelve al estado inicial; ``now`` es la referencia de silencio sin eventos."""
        self._state = HealthState.CONNECTED
        self._baseline = now
        self._last_check_at = None
        self._transitions = 0
        metrics.set_health_state(self._state)

    def silence_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or self._clock()
        reference = self._cache.last_event_at or self._baseline
        if reference is None:
            return float("inf")
        return max(0.0, (now - reference).total_seconds())

    def tick(self) -> HealthState:
        """Evalúa la salud y ajusta el modo de polling si la clasificación cambió."""
        now = self._clock()
        connected = self._channel.is_connected()
        silence = self.silence_seconds(now)
        self._last_check_at = now

        new_state = classify(connected, silence, self._threshold)
        if new_state is self._state:
            logger.debug("[HEALTH] %s (silence=%.0fs)", new_state.value, silence)
            return new_state

        previous = self._state
        self._state = new_state
        self._transitions += 1
        metrics.set_health_state(new_state)
        logger.warning(
            "[HEALTH] %s -> %s (connected=%s silence=%.0fs threshold=%.0fs)",
            previous.value,
            new_state.value,
            connected,
            silence,
            self._threshold,
        )

        if new_state in (HealthState.DEGRADED, HealthState.DISCONNECTED):
            if self._polling.mode is not PollingMode.AGGRESSIVE:
                self._polling.set_mode(PollingMode.AGGRESSIVE)
        elif self._polling.mode is PollingMode.AGGRESSIVE:
            self._polling.set_mode(PollingMode.REAL_TIME)

        return new_state

    def status(self) -> dict:
        silence = self.silence_seconds()
        return {
            "state": self._state.value,
            "connected": self._channel.is_connected(),
            "channel": self._channel.channel_name,
            "silence_seconds": None if silence == float("inf") else round(silence, 1),
            "silence_threshold_seconds": self._threshold,
            "last_check_at": self._last_check_at.isoformat() if self._last_check_at else None,
            "transitions": self._transitions,
        }
