"""Ground-truth aggregator.

Groups upload session records into work units keyed by (area, phase).
Pure over the given snapshot: the only side effect is logging.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, Optional, Sequence, Tuple, Union

from .models import UploadSessionRecord, WorkUnit

logger = logging.getLogger(__name__)

WorkUnitKey = Tuple[str, int]


def area_share(total: int, area_count: int) -> int:
    """Cuota por área de un registro.

    Un registro con una sola área aporta el total completo; uno que cubre
    varias áreas reparte ceil(total / n) a cada una.
    """
    if area_count <= 1:
        return total
    return math.ceil(total / area_count)


@dataclass
class _UnitBuilder:
    area_code: str
    phase: int
    expected_total: int = 0
    reported_processed: int = 0
    record_count: int = 0
    created_at: Optional[datetime] = None
    detection_started_at: Optional[datetime] = None
    detection_completed_at: Optional[datetime] = None
    latest_created_at: Optional[datetime] = None
    operator: str = "UNKNOWN"
    session_id: Union[int, str, None] = None

    def add(self, record: UploadSessionRecord, started: int, ended: int) -> None:
        self.expected_total += started
        self.reported_processed += ended
        self.record_count += 1

        if self.created_at is None or record.created_at < self.created_at:
            self.created_at = record.created_at

        if record.detection_started_at is not None:
            if (
                self.detection_started_at is None
                or record.detection_started_at < self.detection_started_at
            ):
                self.detection_started_at = record.detection_started_at

        if record.detection_completed_at is not None:
            if (
                self.detection_completed_at is None
                or record.detection_completed_at > self.detection_completed_at
            ):
                self.detection_completed_at = record.detection_completed_at

        # Operador y sesión del registro más reciente
        if self.latest_created_at is None or record.created_at >= self.latest_created_at:
            self.latest_created_at = record.created_at
            self.operator = record.operator
            self.session_id = record.id

    def build(self) -> WorkUnit:
        return WorkUnit(
            area_code=self.area_code,
            phase=self.phase,
            expected_total=max(0, self.expected_total),
            operator=self.operator,
            session_id=self.session_id,
            created_at=self.created_at,
            detection_started_at=self.detection_started_at,
            detection_completed_at=self.detection_completed_at,
            reported_processed=max(0, self.reported_processed),
            record_count=self.record_count,
        )


def aggregate(
    records: Iterable[UploadSessionRecord],
    authorized_areas: Sequence[str] = (),
) -> Dict[WorkUnitKey, WorkUnit]:
    """Agrupa registros de subida en WorkUnits por (área, fase).

    Args:
        records: Registros de sesión de subida ya normalizados
        authorized_areas: Áreas permitidas para el usuario (vacío = sin restricción)

    Returns:
        Dict (área, fase) -> WorkUnit
    """
    allowed = set(authorized_areas)
    builders: Dict[WorkUnitKey, _UnitBuilder] = {}
    seen = 0

    for record in records:
        seen += 1
        if not record.area_codes:
            logger.warning("[AGGREGATOR] Record %s has no area code, skipped", record.id)
            continue

        if record.start_uploads is None:
            logger.warning(
                "[AGGREGATOR] Record %s missing start_uploads, counted as 0", record.id
            )
        started_total = max(0, record.start_uploads or 0)
        ended_total = max(0, record.end_uploads or 0)

        area_count = len(record.area_codes)
        started = area_share(started_total, area_count)
        ended = area_share(ended_total, area_count)

        for area_code in record.area_codes:
            if allowed and area_code not in allowed:
                logger.debug(
                    "[AGGREGATOR] Area %s not authorized, record %s ignored for it",
                    area_code,
                    record.id,
                )
                continue

            key = (area_code, record.phase)
            builder = builders.get(key)
            if builder is None:
                builder = _UnitBuilder(area_code=area_code, phase=record.phase)
                builders[key] = builder
            builder.add(record, started, ended)

    units = {key: builder.build() for key, builder in builders.items()}
    logger.debug("[AGGREGATOR] %d records -> %d work units", seen, len(units))
    return units
