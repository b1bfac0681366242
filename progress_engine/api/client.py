"""Cliente REST del ground-truth store.

Normaliza las respuestas del backend antes de que lleguen al motor:
el backend a veces responde ``{"success": ..., "data": [...]}`` y a veces un
array directo. Aquí ambos se convierten en listas tipadas.

Errores HTTP, ``success: false`` y JSON inválido se elevan como ApiError;
quien llama (resync, relay) los captura y los registra.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx
import orjson
from pydantic import ValidationError

from ..domain.models import AreaDetections, UploadSessionRecord
from .retry import RetryConfig, async_retry

logger = logging.getLogger(__name__)

UPLOAD_DETAILS_PATH = "/uploadDetails"
DETECTIONS_BY_AREA_PATH = "/dashboard/birdDropsByBlock"
DETECTION_UPDATE_PATH = "/uploadDetails/detection"


class ApiError(Exception):
    """Fallo de una llamada REST."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class ServerError(ApiError):
    """HTTP 5xx, reintentable."""


def unwrap_rows(body: Any, path: str) -> List[Any]:
    """Extrae las filas de ``{success, data}`` o de un array directo."""
    if body is None:
        return []
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        if body.get("success") is False:
            raise ApiError(f"{path} failed: {body.get('message') or 'success=false'}")
        data = body.get("data")
        if data is None:
            return []
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            return [data]
    raise ApiError(f"{path} returned unexpected body type {type(body).__name__}")


def is_success(body: Any) -> bool:
    if isinstance(body, dict) and "success" in body:
        return bool(body["success"])
    return True


class UploadApiClient:
    """Cliente httpx asíncrono para upload details y agregados de detección.

    Uso:
        async with UploadApiClient("https://api.example.com", token="...") as client:
            records = await client.fetch_upload_details("2026-01-31")
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 10.0,
        retry: Optional[RetryConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._retry_config = retry or RetryConfig(
            max_attempts=3,
            retryable_exceptions=(httpx.TransportError, ServerError),
        )
        self._request = async_retry(self._retry_config)(self._request_once)

    async def __aenter__(self) -> "UploadApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_once(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._client.request(method, path, **kwargs)

        if response.status_code >= 500:
            raise ServerError(f"{method} {path} -> HTTP {response.status_code}", response.status_code)
        if response.status_code >= 400:
            raise ApiError(f"{method} {path} -> HTTP {response.status_code}", response.status_code)

        if not response.content:
            return None
        try:
            return orjson.loads(response.content)
        except orjson.JSONDecodeError as e:
            raise ApiError(f"{method} {path} returned invalid JSON: {e}") from e

    async def _patch_json(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self._request(
            "PATCH",
            path,
            content=orjson.dumps(payload),
            headers={"Content-Type": "application/json"},
        )

    async def fetch_upload_details(self, created_at: str) -> List[UploadSessionRecord]:
        """GET /uploadDetails?createdAt=YYYY-MM-DD.

        Filas que no validan se descartan y se registran.
        """
        body = await self._request("GET", UPLOAD_DETAILS_PATH, params={"createdAt": created_at})
        records: List[UploadSessionRecord] = []
        skipped = 0
        for row in unwrap_rows(body, UPLOAD_DETAILS_PATH):
            try:
                records.append(UploadSessionRecord.model_validate(row))
            except ValidationError as e:
                skipped += 1
                logger.warning("[API] Skipping malformed upload record: %s", e.errors()[:1])

        logger.debug(
            "[API] uploadDetails createdAt=%s records=%d skipped=%d",
            created_at,
            len(records),
            skipped,
        )
        return records

    async def fetch_detections_by_area(self, period: str = "today") -> Dict[str, AreaDetections]:
        """GET /dashboard/birdDropsByBlock?type=today (agregado de respaldo)."""
        body = await self._request("GET", DETECTIONS_BY_AREA_PATH, params={"type": period})
        detections: Dict[str, AreaDetections] = {}
        for row in unwrap_rows(body, DETECTIONS_BY_AREA_PATH):
            try:
                item = AreaDetections.model_validate(row)
            except ValidationError as e:
                logger.warning("[API] Skipping malformed detection row: %s", e.errors()[:1])
                continue
            detections[item.area_code] = item
        return detections

    async def update_upload_progress(
        self,
        operator: str,
        area_code: str,
        end_uploads: int,
        status: str = "active",
    ) -> bool:
        """PATCH /uploadDetails/detection con el conteo procesado del área."""
        body = await self._patch_json(
            DETECTION_UPDATE_PATH,
            {
                "operator": operator,
                "areaCode": area_code,
                "status": status,
                "endUploads": end_uploads,
            },
        )
        if not is_success(body):
            logger.warning(
                "[API] Progress update rejected for area %s: %s",
                area_code,
                body.get("message") if isinstance(body, dict) else body,
            )
            return False
        return True

    async def report_detection(self, area_code: str, total_detected: int, operator: str) -> bool:
        """PATCH /uploadDetails/detection con el total detectado del área."""
        body = await self._patch_json(
            DETECTION_UPDATE_PATH,
            {
                "areaCode": area_code,
                "totalDetected": total_detected,
                "operator": operator,
            },
        )
        if not is_success(body):
            logger.warning("[API] Detection report rejected for area %s", area_code)
            return False
        return True
