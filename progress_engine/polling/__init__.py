"""Scheduling de tareas periódicas y cadencia de polling."""

from .scheduler import (
    AGGRESSIVE_POLL_TASK,
    NORMAL_POLL_TASK,
    PollingScheduler,
    TaskScheduler,
)

__all__ = [
    "AGGRESSIVE_POLL_TASK",
    "NORMAL_POLL_TASK",
    "PollingScheduler",
    "TaskScheduler",
]
