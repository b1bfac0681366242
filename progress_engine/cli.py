"""CLI entry point del monitor de progreso de subidas.

Ejecutar:
    progress-monitor --once           # un resync, imprime paneles JSON y sale
    progress-monitor --port 8090      # sesión continua + endpoints de estado
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional

import httpx
import orjson
import uvicorn

from common.config import Settings, get_settings

from .api.client import ServerError, UploadApiClient
from .api.retry import RetryConfig
from .endpoints.status import create_app
from .push.channel import InMemoryPushChannel
from .push.mqtt_channel import MqttPushChannel
from .session import MonitoringSession, SessionConfig

logger = logging.getLogger(__name__)


def build_client(settings: Settings) -> UploadApiClient:
    return UploadApiClient(
        settings.api_base_url,
        token=settings.api_token,
        timeout=settings.api_timeout_seconds,
        retry=RetryConfig(
            max_attempts=settings.api_retry_attempts,
            retryable_exceptions=(httpx.TransportError, ServerError),
        ),
    )


async def run_once(settings: Settings) -> dict:
    """Un resync de ground truth sin canal push; devuelve los paneles."""
    async with build_client(settings) as client:
        session = MonitoringSession(
            client,
            InMemoryPushChannel(connected=False),
            SessionConfig.from_settings(settings),
        )
        await session.start()
        try:
            result = session.panels().to_dict()
            result["status"] = session.status()
            return result
        finally:
            session.stop()
            await session.drain(timeout=5)


async def run_forever(settings: Settings, host: str, port: Optional[int]) -> None:
    channel = MqttPushChannel(
        broker_host=settings.mqtt_broker_host,
        broker_port=settings.mqtt_broker_port,
        topic=settings.mqtt_progress_topic,
        username=settings.mqtt_username,
        password=settings.mqtt_password,
    )

    async with build_client(settings) as client:
        session = MonitoringSession(client, channel, SessionConfig.from_settings(settings))
        channel.start()
        await session.start()
        try:
            if port:
                server = uvicorn.Server(
                    uvicorn.Config(create_app(session), host=host, port=port, log_level="info")
                )
                await server.serve()
            else:
                await asyncio.Event().wait()
        finally:
            session.stop()
            channel.stop()
            await session.drain(timeout=5)


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
        handlers=[logging.StreamHandler()],
    )

    p = argparse.ArgumentParser(description="Upload progress reconciliation monitor")
    p.add_argument("--once", action="store_true", help="run a single resync, print panels and exit")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=None, help="serve status endpoints on this port")
    p.add_argument("--log-level", default="INFO")
    args = p.parse_args()

    logging.getLogger().setLevel(args.log_level.upper())
    settings = get_settings()
    logger.info(
        "Progress monitor: api=%s operator=%s areas=%s tz=%s",
        settings.api_base_url,
        settings.operator,
        ",".join(settings.authorized_areas) or "*",
        settings.timezone,
    )

    if args.once:
        result = asyncio.run(run_once(settings))
        sys.stdout.write(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode() + "\n")
        return

    try:
        asyncio.run(run_forever(settings, args.host, args.port))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


if __name__ == "__main__":
    main()
