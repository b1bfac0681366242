"""Métricas Prometheus del motor de progreso."""

from __future__ import annotations

from prometheus_client import Counter, Gauge

from ..domain.models import HealthState, PollingMode

PUSH_EVENTS = Counter(
    "progress_push_events_total",
    "Push progress events handled by the engine",
    ["status"],  # accepted, rejected
)
RESYNCS = Counter(
    "progress_resyncs_total",
    "Ground-truth resync cycles",
    ["trigger", "status"],  # ok, failed, discarded
)
RELAY_UPDATES = Counter(
    "progress_relay_updates_total",
    "Per-area updates sent by the background sync relay",
    ["status"],  # ok, failed
)
HEALTH_STATE = Gauge(
    "progress_push_health_state",
    "Current push channel health (1 for the active state)",
    ["state"],
)
POLLING_MODE = Gauge(
    "progress_polling_mode",
    "Current polling mode (1 for the active mode)",
    ["mode"],
)
WORK_UNITS = Gauge(
    "progress_work_units",
    "Work units built by the last successful resync",
)


def set_health_state(state: HealthState) -> None:
    for candidate in HealthState:
        HEALTH_STATE.labels(state=candidate.value).set(1 if candidate is state else 0)


def set_polling_mode(mode: PollingMode) -> None:
    for candidate in PollingMode:
        POLLING_MODE.labels(mode=candidate.value).set(1 if candidate is mode else 0)
