"""Estadísticas del motor de progreso."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from common.timeutils import utc_now


@dataclass
class EngineStats:
    """Contadores de la sesión de monitoreo."""

    events_received: int = 0
    events_accepted: int = 0
    events_rejected: int = 0
    resyncs_ok: int = 0
    resyncs_failed: int = 0
    resyncs_discarded: int = 0
    relay_updates_ok: int = 0
    relay_updates_failed: int = 0
    last_resync_at: Optional[datetime] = None
    started_at: datetime = field(default_factory=utc_now)

    def __str__(self) -> str:
        return (
            f"Stats: events={self.events_received} accepted={self.events_accepted} "
            f"rejected={self.events_rejected} resyncs_ok={self.resyncs_ok} "
            f"resyncs_failed={self.resyncs_failed} relay_ok={self.relay_updates_ok} "
            f"relay_failed={self.relay_updates_failed}"
        )

    def to_dict(self) -> dict:
        """Convierte a diccionario."""
        return {
            "events_received": self.events_received,
            "events_accepted": self.events_accepted,
            "events_rejected": self.events_rejected,
            "resyncs_ok": self.resyncs_ok,
            "resyncs_failed": self.resyncs_failed,
            "resyncs_discarded": self.resyncs_discarded,
            "relay_updates_ok": self.relay_updates_ok,
            "relay_updates_failed": self.relay_updates_failed,
            "last_resync_at": self.last_resync_at.isoformat() if self.last_resync_at else None,
            "started_at": self.started_at.isoformat(),
            "resync_success_rate": self._resync_success_rate(),
        }

    def _resync_success_rate(self) -> float:
        total = self.resyncs_ok + self.resyncs_failed
        if total == 0:
            return 1.0
        return self.resyncs_ok / total

    def reset(self, now: Optional[datetime] = None):
        """Reinicia estadísticas."""
        self.events_received = 0
        self.events_accepted = 0
        self.events_rejected = 0
        self.resyncs_ok = 0
        self.resyncs_failed = 0
        self.resyncs_discarded = 0
        self.relay_updates_ok = 0
        self.relay_updates_failed = 0
        self.last_resync_at = None
        self.started_at = now or utc_now()
