"""Scheduler de tareas periódicas y polling de ground truth.

TaskScheduler mantiene como máximo UNA tarea por nombre: reprogramar un
nombre cancela primero la tarea anterior. Cancelar detiene el temporizador
pero no aborta una ejecución en curso; su resultado lo descarta quien la
lanzó (la sesión verifica su flag de vida antes de mutar estado).

PollingScheduler usa dos tareas nombradas:
- ``normal-poll``: resync base cada 5 min durante toda la sesión
- ``aggressive-poll``: resync cada 2 min solo en modo AGGRESSIVE
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set, Union

from ..domain.models import PollingMode
from ..monitoring import metrics

logger = logging.getLogger(__name__)

TaskCallback = Callable[[], Union[None, Awaitable[Any]]]

NORMAL_POLL_TASK = "normal-poll"
AGGRESSIVE_POLL_TASK = "aggressive-poll"

DEFAULT_NORMAL_INTERVAL = 300.0
DEFAULT_AGGRESSIVE_INTERVAL = 120.0


class TaskScheduler:
    """Tareas periódicas nombradas y cancelables sobre asyncio.

    Uso:
        scheduler = TaskScheduler()
        scheduler.schedule("health-check", 30, monitor.tick)
        scheduler.cancel("health-check")
    """

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._inflight: Set[asyncio.Future] = set()
        self._runs: Dict[str, int] = {}
        self._failures: Dict[str, int] = {}
        # Próximo disparo por nombre, en tiempo del loop
        self._next_due: Dict[str, float] = {}
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def schedule(
        self,
        name: str,
        interval: float,
        fn: TaskCallback,
        *,
        run_immediately: bool = False,
    ) -> None:
        """Programa ``fn`` cada ``interval`` segundos bajo ``name``.

        Requiere un event loop en ejecución.
        """
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")

        self.cancel(name)
        loop = asyncio.get_running_loop()
        self._loop = loop
        self._next_due[name] = loop.time() + (0.0 if run_immediately else interval)
        self._tasks[name] = loop.create_task(
            self._run(name, interval, fn, run_immediately),
            name=f"scheduler:{name}",
        )
        logger.debug("[SCHEDULER] Scheduled '%s' every %.1fs", name, interval)

    def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        self._next_due.pop(name, None)
        if task is None:
            return False
        task.cancel()
        logger.debug("[SCHEDULER] Cancelled '%s'", name)
        return True

    def cancel_all(self) -> None:
        for name in list(self._tasks):
            self.cancel(name)

    def is_scheduled(self, name: str) -> bool:
        return name in self._tasks

    @property
    def names(self) -> List[str]:
        return sorted(self._tasks)

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Espera a que terminen las ejecuciones en curso."""
        if self._inflight:
            await asyncio.wait(list(self._inflight), timeout=timeout)

    def seconds_until(self, name: str) -> Optional[float]:
        """Segundos hasta el próximo disparo de ``name`` (None si no está programada)."""
        due = self._next_due.get(name)
        if due is None or self._loop is None:
            return None
        return max(0.0, due - self._loop.time())

    async def _run(self, name: str, interval: float, fn: TaskCallback, run_immediately: bool) -> None:
        loop = asyncio.get_running_loop()
        if not run_immediately:
            await asyncio.sleep(interval)
        while True:
            self._next_due[name] = loop.time() + interval
            self._fire(name, fn)
            await asyncio.sleep(interval)

    def _fire(self, name: str, fn: TaskCallback) -> None:
        self._runs[name] = self._runs.get(name, 0) + 1
        try:
            result = fn()
        except Exception as e:
            self._failures[name] = self._failures.get(name, 0) + 1
            logger.exception("[SCHEDULER] Task '%s' failed: %s", name, e)
            return

        if inspect.isawaitable(result):
            future = asyncio.ensure_future(result)
            self._inflight.add(future)
            future.add_done_callback(partial(self._on_done, name))

    def _on_done(self, name: str, future: asyncio.Future) -> None:
        self._inflight.discard(future)
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            self._failures[name] = self._failures.get(name, 0) + 1
            logger.error("[SCHEDULER] Task '%s' failed: %s", name, error, exc_info=error)

    @property
    def stats(self) -> dict:
        return {
            "scheduled": self.names,
            "inflight": len(self._inflight),
            "runs": dict(self._runs),
            "failures": dict(self._failures),
        }


class PollingScheduler:
    """Cadencia de resync elegida por el HealthMonitor."""

    def __init__(
        self,
        scheduler: TaskScheduler,
        resync: Callable[[str], Awaitable[Any]],
        normal_interval: float = DEFAULT_NORMAL_INTERVAL,
        aggressive_interval: float = DEFAULT_AGGRESSIVE_INTERVAL,
    ):
        self._scheduler = scheduler
        self._resync = resync
        self._normal_interval = normal_interval
        self._aggressive_interval = aggressive_interval
        self._mode = PollingMode.NORMAL
        self._running = False

    @property
    def mode(self) -> PollingMode:
        return self._mode

    @property
    def is_running(self) -> bool:
        return self._running

    def interval_for(self, mode: PollingMode) -> Optional[float]:
        """Intervalo propio del modo (REAL_TIME no tiene)."""
        if mode is PollingMode.AGGRESSIVE:
            return self._aggressive_interval
        if mode is PollingMode.NORMAL:
            return self._normal_interval
        return None

    @property
    def effective_interval(self) -> float:
        """Tiempo hasta el próximo resync: la base normal nunca se desactiva."""
        if self._mode is PollingMode.AGGRESSIVE:
            return min(self._aggressive_interval, self._normal_interval)
        return self._normal_interval

    def seconds_until_next_poll(self) -> Optional[float]:
        """Segundos hasta el próximo disparo real de normal-poll o aggressive-poll."""
        pending = [
            remaining
            for remaining in (
                self._scheduler.seconds_until(NORMAL_POLL_TASK),
                self._scheduler.seconds_until(AGGRESSIVE_POLL_TASK),
            )
            if remaining is not None
        ]
        return min(pending) if pending else None

    def start(self) -> None:
        self._running = True
        self._scheduler.schedule(
            NORMAL_POLL_TASK,
            self._normal_interval,
            partial(self._resync, "normal"),
        )
        self._apply_mode()
        metrics.set_polling_mode(self._mode)
        logger.info(
            "[POLL] Started: mode=%s normal=%.0fs aggressive=%.0fs",
            self._mode.value,
            self._normal_interval,
            self._aggressive_interval,
        )

    def set_mode(self, mode: PollingMode) -> None:
        if mode is self._mode:
            return

        previous = self._mode
        self._mode = mode
        metrics.set_polling_mode(mode)
        logger.info("[POLL] Mode %s -> %s", previous.value, mode.value)

        if self._running:
            self._apply_mode()

    def _apply_mode(self) -> None:
        if self._mode is PollingMode.AGGRESSIVE:
            self._scheduler.schedule(
                AGGRESSIVE_POLL_TASK,
                self._aggressive_interval,
                partial(self._resync, "aggressive"),
            )
        else:
            self._scheduler.cancel(AGGRESSIVE_POLL_TASK)

    def stop(self) -> None:
        self._scheduler.cancel(NORMAL_POLL_TASK)
        self._scheduler.cancel(AGGRESSIVE_POLL_TASK)
        self._running = False
        self._mode = PollingMode.NORMAL
        metrics.set_polling_mode(self._mode)
        logger.info("[POLL] Stopped")
