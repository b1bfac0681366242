"""Sesión de monitoreo de progreso de subidas.

Dueña de todo el estado mutable del motor durante una sesión (login):
cache push, work units, agregado de respaldo, health monitor, polling y relay.
Se construye por sesión y se cierra explícitamente con ``stop()``.

Tareas nombradas mientras la sesión está activa:
- normal-poll (5 min) y aggressive-poll (2 min, solo degradado)
- health-check (30 s)
- sync-relay (1 min)

Un resync que termina después de ``stop()`` (o de un reinicio) se descarta:
cada mutación verifica el flag de vida y la generación de la sesión.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from common.config import Settings
from common.timeutils import Clock, local_date_string, utc_now

from .api.client import UploadApiClient
from .domain.aggregator import WorkUnitKey, aggregate
from .domain.models import (
    AreaDetections,
    HealthState,
    PollingMode,
    ProjectedProgress,
    WorkUnit,
)
from .domain.projector import ProgressPanels, project_all, split_by_state
from .monitoring import metrics
from .monitoring.health import HealthMonitor
from .monitoring.stats import EngineStats
from .polling.scheduler import PollingScheduler, TaskScheduler
from .push.cache import PushProgressCache, get_snapshot_policy
from .push.channel import PushChannel, Unsubscribe
from .push.validators import validate_progress_event
from .sync.relay import BackgroundSyncRelay, RelayResult

logger = logging.getLogger(__name__)

HEALTH_CHECK_TASK = "health-check"
SYNC_RELAY_TASK = "sync-relay"


@dataclass(frozen=True)
class SessionConfig:
    """Parámetros de una sesión de monitoreo."""

    operator: str = "UNKNOWN"
    authorized_areas: Tuple[str, ...] = ()
    timezone: str = "Asia/Jakarta"
    health_check_interval: float = 30.0
    silence_threshold: float = 180.0
    normal_poll_interval: float = 300.0
    aggressive_poll_interval: float = 120.0
    sync_relay_interval: float = 60.0
    auto_complete_after: Optional[timedelta] = None
    snapshot_policy: str = "always"
    detections_period: str = "today"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionConfig":
        auto_complete = None
        if settings.auto_complete_after_minutes is not None:
            auto_complete = timedelta(minutes=settings.auto_complete_after_minutes)
        return cls(
            operator=settings.operator,
            authorized_areas=settings.authorized_areas,
            timezone=settings.timezone,
            health_check_interval=settings.health_check_interval_seconds,
            silence_threshold=settings.silence_threshold_seconds,
            normal_poll_interval=settings.normal_poll_seconds,
            aggressive_poll_interval=settings.aggressive_poll_seconds,
            sync_relay_interval=settings.sync_relay_interval_seconds,
            auto_complete_after=auto_complete,
            snapshot_policy=settings.snapshot_policy,
        )


class MonitoringSession:
    """Motor de reconciliación de progreso para una sesión.

    Uso:
        session = MonitoringSession(client, channel, SessionConfig(operator="Drone-001"))
        await session.start()
        panels = session.panels()
        session.stop()
    """

    def __init__(
        self,
        client: UploadApiClient,
        channel: PushChannel,
        config: Optional[SessionConfig] = None,
        clock: Clock = utc_now,
        scheduler: Optional[TaskScheduler] = None,
    ):
        self._client = client
        self._channel = channel
        self._config = config or SessionConfig()
        self._clock = clock

        self._cache = PushProgressCache(clock, get_snapshot_policy(self._config.snapshot_policy))
        self._scheduler = scheduler or TaskScheduler()
        self._polling = PollingScheduler(
            self._scheduler,
            self.resync,
            normal_interval=self._config.normal_poll_interval,
            aggressive_interval=self._config.aggressive_poll_interval,
        )
        self._health = HealthMonitor(
            channel,
            self._cache,
            self._polling,
            clock=clock,
            silence_threshold_seconds=self._config.silence_threshold,
        )
        self._relay = BackgroundSyncRelay(
            self._cache, client, self._config.operator, is_active=lambda: self._alive
        )
        self._stats = EngineStats(started_at=clock())

        self._alive = False
        self._generation = 0
        self._unsubscribe: Optional[Unsubscribe] = None

        self._work_units: Dict[WorkUnitKey, WorkUnit] = {}
        self._detections: Dict[str, AreaDetections] = {}
        self._last_updated_at: Optional[datetime] = None
        self._next_resync_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Ciclo de vida
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Suscribe el canal, hace el resync inicial y arranca las tareas."""
        if self._alive:
            logger.info("[SESSION] Already running")
            return

        now = self._clock()
        self._alive = True
        self._generation += 1
        self._cache.reset(now)
        self._health.reset(now)
        self._stats.reset(now)
        self._unsubscribe = self._channel.subscribe(self._on_push_message)

        logger.info(
            "[SESSION] Starting: operator=%s areas=%s channel=%s",
            self._config.operator,
            ",".join(self._config.authorized_areas) or "*",
            self._channel.channel_name,
        )

        await self.resync("startup")
        if not self._alive:
            return

        self._polling.start()
        self._scheduler.schedule(
            HEALTH_CHECK_TASK, self._config.health_check_interval, self._health.tick
        )
        self._scheduler.schedule(
            SYNC_RELAY_TASK, self._config.sync_relay_interval, self._relay_tick
        )
        logger.info("[SESSION] Started, tasks=%s", self._scheduler.names)

    def stop(self) -> None:
        """Cancela tareas, libera la suscripción y vuelve al estado inicial."""
        if not self._alive:
            return

        self._alive = False
        self._scheduler.cancel(HEALTH_CHECK_TASK)
        self._scheduler.cancel(SYNC_RELAY_TASK)
        self._polling.stop()

        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        self._cache.clear()
        self._health.reset(None)
        self._work_units = {}
        self._detections = {}
        self._next_resync_at = None
        logger.info("[SESSION] Stopped. %s", self._stats)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Espera resyncs / relays en curso (sus resultados se descartan si ya se cerró)."""
        await self._scheduler.drain(timeout)

    @property
    def is_active(self) -> bool:
        return self._alive

    def _is_current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    # ------------------------------------------------------------------
    # Resync de ground truth
    # ------------------------------------------------------------------

    async def resync(self, trigger: str = "manual") -> bool:
        """Resync completo: ground truth, agregado de respaldo y work units.

        Ante un error REST se conserva el estado anterior.

        Returns:
            True si el resultado se aplicó
        """
        if not self._alive:
            logger.debug("[SESSION] Resync (%s) skipped, session not active", trigger)
            return False

        generation = self._generation
        created_at = local_date_string(self._config.timezone, self._clock())

        try:
            records = await self._client.fetch_upload_details(created_at)
        except Exception as e:
            if self._is_current(generation):
                self._stats.resyncs_failed += 1
            metrics.RESYNCS.labels(trigger=trigger, status="failed").inc()
            logger.error("[SESSION] Resync (%s) failed fetching upload details: %s", trigger, e)
            return False

        detections: Optional[Dict[str, AreaDetections]]
        try:
            detections = await self._client.fetch_detections_by_area(self._config.detections_period)
        except Exception as e:
            detections = None
            logger.warning(
                "[SESSION] Resync (%s) fallback aggregate unavailable, keeping previous: %s",
                trigger,
                e,
            )

        if not self._is_current(generation):
            self._stats.resyncs_discarded += 1
            metrics.RESYNCS.labels(trigger=trigger, status="discarded").inc()
            logger.info("[SESSION] Resync (%s) result discarded, session closed", trigger)
            return False

        units = aggregate(records, self._config.authorized_areas)
        self._work_units = units
        if detections is not None:
            self._detections = detections

        now = self._clock()
        self._last_updated_at = now
        until_next = self._polling.seconds_until_next_poll()
        if until_next is None:
            # Polling aún no arrancó (resync inicial)
            until_next = self._polling.effective_interval
        self._next_resync_at = now + timedelta(seconds=until_next)
        self._stats.resyncs_ok += 1
        self._stats.last_resync_at = now
        metrics.RESYNCS.labels(trigger=trigger, status="ok").inc()
        metrics.WORK_UNITS.set(len(units))

        logger.info(
            "[SESSION] Resync (%s) ok: date=%s records=%d units=%d",
            trigger,
            created_at,
            len(records),
            len(units),
        )
        return True

    # ------------------------------------------------------------------
    # Eventos push
    # ------------------------------------------------------------------

    def _on_push_message(self, data: Dict[str, Any]) -> None:
        if not self._alive:
            return

        self._stats.events_received += 1
        result = validate_progress_event(data)
        if not result.valid:
            self._stats.events_rejected += 1
            metrics.PUSH_EVENTS.labels(status="rejected").inc()
            logger.warning("[PUSH] Invalid progress event: %s", result.error)
            return

        self._cache.on_event(result.payload)
        self._stats.events_accepted += 1
        metrics.PUSH_EVENTS.labels(status="accepted").inc()

    async def _relay_tick(self) -> RelayResult:
        result = await self._relay.sync_once()
        if self._alive:
            self._stats.relay_updates_ok += len(result.synced)
            self._stats.relay_updates_failed += len(result.failed)
        return result

    # ------------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------------

    def current_progress(self) -> List[ProjectedProgress]:
        """Progreso proyectado, calculado en cada llamada."""
        return project_all(
            self._work_units.values(),
            self._cache.get_all(),
            self._detections,
            now=self._clock(),
            auto_complete_after=self._config.auto_complete_after,
        )

    def panels(self) -> ProgressPanels:
        return split_by_state(self.current_progress())

    def progress_for(self, area_code: str, phase: int = 0) -> Optional[ProjectedProgress]:
        for item in self.current_progress():
            if item.area_code == area_code and item.phase == phase:
                return item
        return None

    @property
    def work_units(self) -> Dict[WorkUnitKey, WorkUnit]:
        return dict(self._work_units)

    @property
    def cache(self) -> PushProgressCache:
        return self._cache

    @property
    def health(self) -> HealthMonitor:
        return self._health

    @property
    def polling(self) -> PollingScheduler:
        return self._polling

    @property
    def relay(self) -> BackgroundSyncRelay:
        return self._relay

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    @property
    def stats(self) -> EngineStats:
        return self._stats

    @property
    def health_state(self) -> HealthState:
        return self._health.state

    @property
    def polling_mode(self) -> PollingMode:
        return self._polling.mode

    @property
    def last_updated_at(self) -> Optional[datetime]:
        return self._last_updated_at

    def seconds_until_next_resync(self) -> Optional[float]:
        if self._next_resync_at is None:
            return None
        remaining = (self._next_resync_at - self._clock()).total_seconds()
        return max(0.0, remaining)

    def status(self) -> dict:
        remaining = self.seconds_until_next_resync()
        return {
            "active": self._alive,
            "operator": self._config.operator,
            "health": self._health.status(),
            "polling_mode": self._polling.mode.value,
            "last_updated_at": self._last_updated_at.isoformat() if self._last_updated_at else None,
            "next_resync_in_seconds": None if remaining is None else round(remaining, 1),
            "work_units": len(self._work_units),
            "push_cache": self._cache.stats,
            "relay": self._relay.stats,
            "scheduler": self._scheduler.stats,
            "stats": self._stats.to_dict(),
        }
