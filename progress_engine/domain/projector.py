"""Progress projector.

Merges a work unit with the best available processed count and derives the
percentage, queue size and state. Pure functions, no exceptions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Iterable, List, Mapping, Optional

from .models import (
    AreaDetections,
    ProgressState,
    ProjectedProgress,
    PushSnapshot,
    WorkUnit,
)

SOURCE_PUSH = "push"
SOURCE_GROUND_TRUTH = "ground_truth"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def progress_percent(processed: int, expected_total: int) -> int:
    """Porcentaje 0-100; 0 si no hay total esperado."""
    if expected_total <= 0:
        return 0
    pct = _round_half_up(processed / expected_total * 100)
    return max(0, min(100, pct))


def project(
    unit: WorkUnit,
    push: Optional[PushSnapshot] = None,
    ground: Optional[AreaDetections] = None,
    *,
    now: Optional[datetime] = None,
    auto_complete_after: Optional[timedelta] = None,
) -> ProjectedProgress:
    """Proyecta el progreso de una WorkUnit.

    El conteo push gana si existe y es >= al piso de ground truth; en ese caso
    detectados/no detectados salen del snapshot push, si no del ground truth.
    Nunca se suman ambas fuentes.
    """
    detected = ground.detected if ground is not None else 0
    undetected = ground.undetected if ground is not None else 0
    db_processed = detected + undetected
    if unit.reported_processed > db_processed:
        db_processed = unit.reported_processed

    if push is not None and push.total_processed >= db_processed:
        processed = push.total_processed
        detected = push.detected
        undetected = push.undetected
        source = SOURCE_PUSH
    else:
        processed = db_processed
        source = SOURCE_GROUND_TRUTH

    expected = unit.expected_total
    auto_completed = False
    if (
        auto_complete_after is not None
        and now is not None
        and unit.created_at is not None
        and processed < expected
        and now - unit.created_at >= auto_complete_after
    ):
        processed = expected
        auto_completed = True

    if unit.detection_completed_at is not None:
        queued = 0
    else:
        queued = max(0, expected - processed)

    if unit.detection_completed_at is not None or processed >= expected:
        state = ProgressState.COMPLETE
    else:
        state = ProgressState.IN_PROGRESS

    return ProjectedProgress(
        area_code=unit.area_code,
        phase=unit.phase,
        processed=processed,
        expected_total=expected,
        detected_count=detected,
        undetected_count=undetected,
        progress_pct=progress_percent(processed, expected),
        queued=queued,
        state=state,
        source=source,
        session_id=unit.session_id,
        operator=unit.operator,
        created_at=unit.created_at,
        detection_completed_at=unit.detection_completed_at,
        auto_completed=auto_completed,
    )


def project_all(
    units: Iterable[WorkUnit],
    snapshots: Mapping[str, PushSnapshot],
    detections: Mapping[str, AreaDetections],
    *,
    now: Optional[datetime] = None,
    auto_complete_after: Optional[timedelta] = None,
) -> List[ProjectedProgress]:
    """Proyecta todas las unidades, ordenadas por (área, fase)."""
    ordered = sorted(units, key=lambda u: (u.area_code, u.phase))
    return [
        project(
            unit,
            snapshots.get(unit.area_code),
            detections.get(unit.area_code),
            now=now,
            auto_complete_after=auto_complete_after,
        )
        for unit in ordered
    ]


@dataclass
class ProgressPanels:
    in_progress: List[ProjectedProgress] = field(default_factory=list)
    completed: List[ProjectedProgress] = field(default_factory=list)

    @property
    def total_expected(self) -> int:
        return sum(p.expected_total for p in self.in_progress + self.completed)

    @property
    def total_processed(self) -> int:
        return sum(p.processed for p in self.in_progress + self.completed)

    @property
    def total_queued(self) -> int:
        return sum(p.queued for p in self.in_progress + self.completed)

    def to_dict(self) -> dict:
        return {
            "in_progress": [p.to_dict() for p in self.in_progress],
            "completed": [p.to_dict() for p in self.completed],
            "total_expected": self.total_expected,
            "total_processed": self.total_processed,
            "total_queued": self.total_queued,
        }


def split_by_state(progress: Iterable[ProjectedProgress]) -> ProgressPanels:
    panels = ProgressPanels()
    for item in progress:
        if item.is_complete:
            panels.completed.append(item)
        else:
            panels.in_progress.append(item)
    return panels
