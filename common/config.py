from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from dotenv import load_dotenv


def _default_env_file() -> str:
    return str(Path.cwd() / ".env")


def _split_csv(raw: str) -> Tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


def _optional_float(raw: Optional[str]) -> Optional[float]:
    if raw is None or not raw.strip():
        return None
    return float(raw)


@dataclass(frozen=True)
class Settings:
    api_base_url: str
    api_token: Optional[str]
    api_timeout_seconds: float
    api_retry_attempts: int

    mqtt_broker_host: str
    mqtt_broker_port: int
    mqtt_username: Optional[str]
    mqtt_password: Optional[str]
    mqtt_progress_topic: str

    operator: str
    authorized_areas: Tuple[str, ...]
    timezone: str

    health_check_interval_seconds: float = 30.0
    silence_threshold_seconds: float = 180.0
    normal_poll_seconds: float = 300.0
    aggressive_poll_seconds: float = 120.0
    sync_relay_interval_seconds: float = 60.0
    auto_complete_after_minutes: Optional[float] = None
    snapshot_policy: str = "always"


def get_settings() -> Settings:
    # Load env file (if present) but still allow overriding via real environment variables.
    env_file = os.getenv("PROGRESS_ENV_FILE", _default_env_file())
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    api_base_url = os.getenv("API_BASE_URL", "http://localhost:3000")
    api_token = os.getenv("API_TOKEN") or None
    api_timeout_seconds = float(os.getenv("API_TIMEOUT_SECONDS", "10"))
    api_retry_attempts = int(os.getenv("API_RETRY_ATTEMPTS", "3"))

    mqtt_broker_host = os.getenv("MQTT_BROKER_HOST", "localhost")
    mqtt_broker_port = int(os.getenv("MQTT_BROKER_PORT", "1883"))
    mqtt_username = os.getenv("MQTT_USERNAME") or None
    mqtt_password = os.getenv("MQTT_PASSWORD") or None
    mqtt_progress_topic = os.getenv("MQTT_PROGRESS_TOPIC", "detection-events/block-progress")

    return Settings(
        api_base_url=api_base_url,
        api_token=api_token,
        api_timeout_seconds=api_timeout_seconds,
        api_retry_attempts=max(1, api_retry_attempts),
        mqtt_broker_host=mqtt_broker_host,
        mqtt_broker_port=mqtt_broker_port,
        mqtt_username=mqtt_username,
        mqtt_password=mqtt_password,
        mqtt_progress_topic=mqtt_progress_topic,
        operator=os.getenv("MONITOR_OPERATOR", "UNKNOWN"),
        authorized_areas=_split_csv(os.getenv("MONITOR_AREAS", "")),
        # Los registros de subida se fechan en hora local de campo.
        timezone=os.getenv("MONITOR_TIMEZONE", "Asia/Jakarta"),
        health_check_interval_seconds=float(os.getenv("HEALTH_CHECK_INTERVAL_SECONDS", "30")),
        silence_threshold_seconds=float(os.getenv("PUSH_SILENCE_THRESHOLD_SECONDS", "180")),
        normal_poll_seconds=float(os.getenv("NORMAL_POLL_SECONDS", "300")),
        aggressive_poll_seconds=float(os.getenv("AGGRESSIVE_POLL_SECONDS", "120")),
        sync_relay_interval_seconds=float(os.getenv("SYNC_RELAY_INTERVAL_SECONDS", "60")),
        auto_complete_after_minutes=_optional_float(os.getenv("AUTO_COMPLETE_AFTER_MINUTES")),
        snapshot_policy=os.getenv("PUSH_SNAPSHOT_POLICY", "always").strip().lower(),
    )
