"""Modelos de dominio del motor de reconciliación de progreso.

- UploadSessionRecord / AreaDetections: filas REST normalizadas (pydantic).
- WorkUnit: unidad de trabajo (área, fase), reconstruida en cada resync.
- PushSnapshot: última lectura absoluta recibida por el canal push.
- ProjectedProgress: resultado calculado bajo demanda, no se almacena.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from common.timeutils import ensure_aware


class HealthState(str, Enum):
    """Confianza en el canal push."""
    CONNECTED = "connected"
    DEGRADED = "degraded"
    DISCONNECTED = "disconnected"


class PollingMode(str, Enum):
    """Cadencia de resincronización."""
    REAL_TIME = "real_time"
    NORMAL = "normal"
    AGGRESSIVE = "aggressive"


class ProgressState(str, Enum):
    IN_PROGRESS = "in_progress"
    COMPLETE = "complete"


class UploadSessionRecord(BaseModel):
    """Registro de sesión de subida (una acción de subida en campo).

    Acepta los nombres del backend (snake_case, camelCase, ``area_handle``)
    y normaliza ``area_codes`` a una tupla aunque llegue un solo código.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    id: Union[int, str]
    operator: str = "UNKNOWN"
    area_codes: Tuple[str, ...] = Field(
        default=(),
        validation_alias=AliasChoices(
            "area_codes", "area_code", "areaCode", "area_handle", "areaHandle"
        ),
    )
    phase: int = 0
    start_uploads: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("start_uploads", "startUploads")
    )
    end_uploads: Optional[int] = Field(
        default=None, validation_alias=AliasChoices("end_uploads", "endUploads")
    )
    status: Optional[str] = None
    created_at: datetime = Field(validation_alias=AliasChoices("created_at", "createdAt"))
    detection_started_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("detection_started_at", "detectionStartedAt"),
    )
    detection_completed_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("detection_completed_at", "detectionCompletedAt"),
    )

    @field_validator("area_codes", mode="before")
    @classmethod
    def _coerce_area_codes(cls, v: Any) -> Tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        codes = []
        for code in v:
            if code is None:
                continue
            text = str(code).strip()
            if text and text not in codes:
                codes.append(text)
        return tuple(codes)

    @field_validator("operator", mode="before")
    @classmethod
    def _coerce_operator(cls, v: Any) -> str:
        return str(v) if v else "UNKNOWN"

    @field_validator("phase", mode="before")
    @classmethod
    def _coerce_phase(cls, v: Any) -> int:
        return 0 if v is None else v

    @field_validator("start_uploads", "end_uploads", mode="before")
    @classmethod
    def _coerce_count(cls, v: Any) -> Optional[int]:
        # Conteos ilegibles ("", "n/a") se tratan como ausentes; el agregador los cuenta como 0
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, int):
            return v
        if isinstance(v, float):
            return int(v) if v.is_integer() else None
        try:
            return int(str(v).strip())
        except ValueError:
            return None

    @field_validator("created_at", "detection_started_at", "detection_completed_at")
    @classmethod
    def _aware(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_aware(v)


class AreaDetections(BaseModel):
    """Fila del agregado de respaldo ``/dashboard/birdDropsByBlock``."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    area_code: str = Field(validation_alias=AliasChoices("area_code", "areaCode"))
    total: int = 0
    detected: int = Field(
        default=0, validation_alias=AliasChoices("detected", "true_detection", "trueDetection")
    )
    undetected: int = Field(
        default=0, validation_alias=AliasChoices("undetected", "false_detection", "falseDetection")
    )

    @field_validator("total", "detected", "undetected", mode="before")
    @classmethod
    def _none_is_zero(cls, v: Any) -> Any:
        return 0 if v is None else v

    @property
    def processed(self) -> int:
        return self.detected + self.undetected


@dataclass(frozen=True)
class WorkUnit:
    area_code: str
    phase: int
    expected_total: int
    operator: str
    session_id: Union[int, str]
    created_at: datetime
    detection_started_at: Optional[datetime] = None
    detection_completed_at: Optional[datetime] = None
    reported_processed: int = 0
    record_count: int = 1

    @property
    def key(self) -> Tuple[str, int]:
        return (self.area_code, self.phase)


@dataclass(frozen=True)
class PushSnapshot:
    area_code: str
    detected: int
    undetected: int
    total_processed: int
    received_at: datetime
    event_timestamp: Optional[datetime] = None


@dataclass(frozen=True)
class ProjectedProgress:
    area_code: str
    phase: int
    processed: int
    expected_total: int
    detected_count: int
    undetected_count: int
    progress_pct: int
    queued: int
    state: ProgressState
    source: str
    session_id: Union[int, str, None] = None
    operator: Optional[str] = None
    created_at: Optional[datetime] = None
    detection_completed_at: Optional[datetime] = None
    auto_completed: bool = False

    @property
    def is_complete(self) -> bool:
        return self.state is ProgressState.COMPLETE

    def to_dict(self) -> dict:
        data = asdict(self)
        data["state"] = self.state.value
        for key in ("created_at", "detection_completed_at"):
            if data[key] is not None:
                data[key] = data[key].isoformat()
        return data
