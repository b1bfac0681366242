"""Validadores de eventos de progreso del canal push.

Valida y transforma eventos ``block-progress`` al formato interno.

Formato esperado:
    {
        "area_code": "A",
        "detected_count": 60,
        "undetected_count": 40,
        "total_processed": 100,
        "timestamp": "2026-01-31T08:00:00.123456Z"
    }
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from common.timeutils import ensure_aware

logger = logging.getLogger(__name__)


class ProgressEventPayload(BaseModel):
    """Schema de validación para eventos de progreso por área."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    area_code: str = Field(..., validation_alias=AliasChoices("area_code", "areaCode"))
    detected: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("detected_count", "detectedCount", "detected"),
    )
    undetected: int = Field(
        default=0,
        ge=0,
        validation_alias=AliasChoices("undetected_count", "undetectedCount", "undetected"),
    )
    total_processed: int = Field(
        ...,
        ge=0,
        validation_alias=AliasChoices("total_processed", "totalProcessed"),
    )
    timestamp: Optional[datetime] = None

    @field_validator("area_code", mode="before")
    @classmethod
    def validate_area_code(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("area_code is required")
        return str(v).strip()

    @field_validator("detected", "undetected", mode="before")
    @classmethod
    def none_is_zero(cls, v):
        return 0 if v is None else v

    @field_validator("timestamp")
    @classmethod
    def aware_timestamp(cls, v):
        return ensure_aware(v)


@dataclass
class ValidationResult:
    """Resultado de validación."""

    valid: bool
    payload: Optional[ProgressEventPayload] = None
    error: Optional[str] = None


def validate_progress_event(data: Any) -> ValidationResult:
    """Valida payload de evento de progreso.

    Args:
        data: Diccionario con datos del evento push

    Returns:
        ValidationResult con payload validado o error
    """
    if not isinstance(data, dict):
        return ValidationResult(valid=False, error=f"Payload must be an object, got {type(data).__name__}")

    try:
        payload = ProgressEventPayload.model_validate(data)
        return ValidationResult(valid=True, payload=payload)
    except Exception as e:
        logger.warning("[PUSH_VALIDATOR] Validation failed: %s", e)
        return ValidationResult(valid=False, error=str(e))
