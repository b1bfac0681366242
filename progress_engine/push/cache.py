"""Push progress cache.

Mapa en memoria área -> último snapshot recibido por el canal push.

GARANTÍAS:
- Cada evento REEMPLAZA el snapshot del área (valores absolutos, no deltas)
- La política de reemplazo vive en un único comparador
- Sin validación de monotonía: el proyector toma el máximo contra ground truth
- Nunca se persiste; se limpia al cerrar la sesión
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from common.timeutils import Clock, utc_now

from ..domain.models import PushSnapshot
from .validators import ProgressEventPayload

logger = logging.getLogger(__name__)

SnapshotPolicy = Callable[[Optional[PushSnapshot], PushSnapshot], bool]


def snapshot_supersedes(current: Optional[PushSnapshot], incoming: PushSnapshot) -> bool:
    """Un snapshot posterior siempre reemplaza al anterior."""
    return True


def newer_or_larger(current: Optional[PushSnapshot], incoming: PushSnapshot) -> bool:
    """Reemplaza solo si el evento es más nuevo o el conteo es mayor."""
    if current is None:
        return True
    if incoming.total_processed >= current.total_processed:
        return True
    if incoming.event_timestamp is None or current.event_timestamp is None:
        return False
    return incoming.event_timestamp > current.event_timestamp


SNAPSHOT_POLICIES: Dict[str, SnapshotPolicy] = {
    "always": snapshot_supersedes,
    "newer_or_larger": newer_or_larger,
}


def get_snapshot_policy(name: str) -> SnapshotPolicy:
    try:
        return SNAPSHOT_POLICIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown snapshot policy '{name}', expected one of {sorted(SNAPSHOT_POLICIES)}"
        ) from None


class PushProgressCache:
    """Cache de snapshots push por área."""

    def __init__(
        self,
        clock: Clock = utc_now,
        policy: SnapshotPolicy = snapshot_supersedes,
    ):
        self._clock = clock
        self._policy = policy
        self._snapshots: Dict[str, PushSnapshot] = {}
        self._last_event_at: Optional[datetime] = None

        self._accepted = 0
        self._superseded_rejected = 0

    def on_event(self, event: ProgressEventPayload) -> bool:
        """Guarda el snapshot del área.

        Returns:
            True si el snapshot se almacenó
        """
        now = self._clock()
        incoming = PushSnapshot(
            area_code=event.area_code,
            detected=event.detected,
            undetected=event.undetected,
            total_processed=event.total_processed,
            received_at=now,
            event_timestamp=event.timestamp,
        )

        # Cualquier evento válido demuestra que el canal está vivo
        self._last_event_at = now

        current = self._snapshots.get(event.area_code)
        if not self._policy(current, incoming):
            self._superseded_rejected += 1
            logger.debug(
                "[PUSH_CACHE] Snapshot for %s kept (current=%d incoming=%d)",
                event.area_code,
                current.total_processed if current else 0,
                incoming.total_processed,
            )
            return False

        if current is not None and incoming.total_processed < current.total_processed:
            logger.info(
                "[PUSH_CACHE] Area %s regressed %d -> %d",
                event.area_code,
                current.total_processed,
                incoming.total_processed,
            )

        self._snapshots[event.area_code] = incoming
        self._accepted += 1
        logger.debug(
            "[PUSH_CACHE] Area %s: %d processed (detected=%d undetected=%d)",
            event.area_code,
            incoming.total_processed,
            incoming.detected,
            incoming.undetected,
        )
        return True

    def get(self, area_code: str) -> Optional[PushSnapshot]:
        return self._snapshots.get(area_code)

    def get_all(self) -> Dict[str, PushSnapshot]:
        return dict(self._snapshots)

    @property
    def last_event_at(self) -> Optional[datetime]:
        return self._last_event_at

    def reset(self, now: Optional[datetime] = None) -> None:
        """Vacía la cache y fija la referencia de silencio."""
        self._snapshots.clear()
        self._last_event_at = now
        self._accepted = 0
        self._superseded_rejected = 0

    def clear(self) -> None:
        self.reset(None)

    def __len__(self) -> int:
        return len(self._snapshots)

    @property
    def stats(self) -> dict:
        return {
            "areas": len(self._snapshots),
            "accepted": self._accepted,
            "kept_by_policy": self._superseded_rejected,
            "last_event_at": self._last_event_at.isoformat() if self._last_event_at else None,
        }
