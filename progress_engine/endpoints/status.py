"""Endpoints de estado del monitor de progreso.

Superficie de solo lectura sobre una MonitoringSession: salud, estado de la
sesión, paneles de progreso y métricas Prometheus.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, FastAPI, HTTPException, Request
from prometheus_client import make_asgi_app

from ..session import MonitoringSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["monitoring"])


def _session(request: Request) -> MonitoringSession:
    session = getattr(request.app.state, "session", None)
    if session is None:
        raise HTTPException(status_code=503, detail="monitoring session not configured")
    return session


@router.get("/health")
def health(request: Request):
    """Liveness + estado del canal push."""
    session = _session(request)
    return {
        "status": "ok" if session.is_active else "stopped",
        "push_health": session.health_state.value,
        "polling_mode": session.polling_mode.value,
    }


@router.get("/monitoring/status")
def monitoring_status(request: Request):
    return _session(request).status()


@router.get("/monitoring/progress")
def monitoring_progress(request: Request):
    """Paneles en curso / completados, proyectados en cada request."""
    session = _session(request)
    panels = session.panels().to_dict()
    panels["last_updated_at"] = (
        session.last_updated_at.isoformat() if session.last_updated_at else None
    )
    panels["next_resync_in_seconds"] = session.seconds_until_next_resync()
    return panels


@router.get("/monitoring/progress/{area_code}")
def area_progress(area_code: str, request: Request, phase: int = 0):
    item = _session(request).progress_for(area_code, phase)
    if item is None:
        raise HTTPException(status_code=404, detail=f"no work unit for area {area_code} phase {phase}")
    return item.to_dict()


def create_app(session: MonitoringSession) -> FastAPI:
    app = FastAPI(title="Upload Progress Monitor", version="0.1.0")
    app.state.session = session
    app.include_router(router)
    app.mount("/metrics", make_asgi_app())
    return app
