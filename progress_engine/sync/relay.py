"""Background sync relay.

Cada minuto envía al ground-truth store el conteo procesado de cada área
presente en la cache push, para que otros dispositivos vean el mismo estado.

- Fallos por área se registran y NO abortan las demás áreas
- Entrega al-menos-una-vez: el backend trata actualizaciones repetidas
  con el mismo valor como idempotentes
- El siguiente tick reintenta lo que falló
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ..api.client import UploadApiClient
from ..monitoring import metrics
from ..push.cache import PushProgressCache

logger = logging.getLogger(__name__)

RELAY_STATUS = "active"


@dataclass
class RelayResult:
    """Resultado de un tick del relay."""

    synced: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def attempted(self) -> int:
        return len(self.synced) + len(self.failed)


class BackgroundSyncRelay:
    """Propaga snapshots push al backend."""

    def __init__(
        self,
        cache: PushProgressCache,
        client: UploadApiClient,
        operator: str,
        is_active: Optional[Callable[[], bool]] = None,
    ):
        self._cache = cache
        self._client = client
        self._operator = operator or "UNKNOWN"
        self._is_active = is_active

        self._ticks = 0
        self._synced_total = 0
        self._failed_total = 0

    async def sync_once(self) -> RelayResult:
        """Sincroniza todas las áreas de la cache.

        Si la sesión se cierra a mitad del tick, no se envían más áreas.
        """
        self._ticks += 1
        result = RelayResult()
        snapshots = self._cache.get_all()

        if not snapshots:
            logger.debug("[RELAY] No progress data to sync")
            return result

        for area_code in sorted(snapshots):
            if self._is_active is not None and not self._is_active():
                logger.info("[RELAY] Session closed, stopping sync at area %s", area_code)
                break
            snapshot = snapshots[area_code]
            try:
                ok = await self._client.update_upload_progress(
                    operator=self._operator,
                    area_code=area_code,
                    end_uploads=snapshot.total_processed,
                    status=RELAY_STATUS,
                )
            except Exception as e:
                logger.error("[RELAY] Error syncing area %s: %s", area_code, e)
                ok = False

            if ok:
                result.synced.append(area_code)
                metrics.RELAY_UPDATES.labels(status="ok").inc()
            else:
                result.failed.append(area_code)
                metrics.RELAY_UPDATES.labels(status="failed").inc()

        self._synced_total += len(result.synced)
        self._failed_total += len(result.failed)

        if result.failed:
            logger.warning(
                "[RELAY] Sync completed with failures: ok=%d failed=%s",
                len(result.synced),
                result.failed,
            )
        else:
            logger.info("[RELAY] Synced %d areas", len(result.synced))
        return result

    @property
    def stats(self) -> dict:
        return {
            "operator": self._operator,
            "ticks": self._ticks,
            "synced_total": self._synced_total,
            "failed_total": self._failed_total,
        }
