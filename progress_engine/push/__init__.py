"""Canal push y cache de progreso.

Estructura:
- channel.py: Interface PushChannel + canal en memoria
- mqtt_channel.py: Canal MQTT (paho-mqtt)
- validators.py: Validación de eventos de progreso
- cache.py: Cache de snapshots por área
"""

from .cache import PushProgressCache, get_snapshot_policy, newer_or_larger, snapshot_supersedes
from .channel import InMemoryPushChannel, PushChannel
from .validators import ProgressEventPayload, ValidationResult, validate_progress_event

__all__ = [
    "PushProgressCache",
    "get_snapshot_policy",
    "newer_or_larger",
    "snapshot_supersedes",
    "InMemoryPushChannel",
    "PushChannel",
    "ProgressEventPayload",
    "ValidationResult",
    "validate_progress_event",
]
