"""Domain layer - modelos, agregación de ground truth y proyección de progreso."""

from .aggregator import aggregate, area_share
from .models import (
    AreaDetections,
    HealthState,
    PollingMode,
    ProgressState,
    ProjectedProgress,
    PushSnapshot,
    UploadSessionRecord,
    WorkUnit,
)
from .projector import ProgressPanels, project, project_all, split_by_state

__all__ = [
    "aggregate",
    "area_share",
    "AreaDetections",
    "HealthState",
    "PollingMode",
    "ProgressState",
    "ProjectedProgress",
    "PushSnapshot",
    "UploadSessionRecord",
    "WorkUnit",
    "ProgressPanels",
    "project",
    "project_all",
    "split_by_state",
]
