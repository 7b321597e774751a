"""
Geographic search API endpoints.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, field_validator

from auth import dependencies as auth_dependencies
from core import settings
from registry import service as registry_service
from registry.service import RegistryEnricher

from . import repository, service
from .repository import GeoStoreError
from .service import SearchState, StreamSummary

logger = logging.getLogger(__name__)

router = APIRouter()


def _within_result_cap(value: int | None) -> int | None:
    cap = settings.max_results()
    if value is not None and value > cap:
        raise ValueError(f"limit must be at most {cap}")
    return value


# Upper bounds follow the GEO_MAX_* settings at request time.
class PolygonSearchRequest(BaseModel):
    # [[longitude, latitude], ...]; closed automatically.
    polygon: list[tuple[float, float]] = Field(..., min_length=3)
    limit: int | None = Field(default=None, ge=1)
    stream: bool = False

    @field_validator("polygon")
    @classmethod
    def check_point_cap(cls, value: list[tuple[float, float]]) -> list[tuple[float, float]]:
        cap = settings.max_polygon_points()
        if len(value) > cap:
            raise ValueError(f"polygon accepts at most {cap} points")
        return value

    @field_validator("limit")
    @classmethod
    def check_limit(cls, value: int | None) -> int | None:
        return _within_result_cap(value)


class RadiusSearchRequest(BaseModel):
    longitude: float = Field(..., ge=-180.0, le=180.0)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    radius_meters: float = Field(..., gt=0)
    limit: int | None = Field(default=None, ge=1)

    @field_validator("radius_meters")
    @classmethod
    def check_radius_cap(cls, value: float) -> float:
        cap = settings.max_radius_meters()
        if value > cap:
            raise ValueError(f"radius_meters must be at most {cap:g}")
        return value

    @field_validator("limit")
    @classmethod
    def check_limit(cls, value: int | None) -> int | None:
        return _within_result_cap(value)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _line(payload: dict[str, Any]) -> bytes:
    payload.setdefault("timestamp", _timestamp())
    return (json.dumps(payload, ensure_ascii=False) + "\n").encode("utf-8")


async def _ndjson_events(
    request: Request,
    points: list[list[float]],
    limit: int,
    enricher: RegistryEnricher,
) -> AsyncIterator[bytes]:
    yield _line({"type": "start", "message": "Recherche géographique démarrée"})

    summary: StreamSummary | None = None
    async for event in service.iter_polygon_owners(
        points,
        limit,
        enricher=enricher,
        is_cancelled=request.is_disconnected,
    ):
        if isinstance(event, StreamSummary):
            summary = event
            continue
        yield _line(event.to_payload())

    if summary is None or summary.cancelled:
        return

    yield _line(summary.to_payload())
    if summary.state is SearchState.ERROR:
        yield _line(
            {
                "type": "error",
                **auth_dependencies.error_detail("Erreur base de données", "GEO_STORE_ERROR", summary.reason),
            }
        )
        return
    yield _line({"type": "complete", "message": "Recherche terminée"})


@router.post("/search/geo")
async def search_geo(
    request: Request,
    body: PolygonSearchRequest,
    api_key: str = Depends(auth_dependencies.require_api_key),
    enricher: RegistryEnricher = Depends(registry_service.enricher),
):
    points = [list(p) for p in body.polygon]
    limit = body.limit or settings.geo_default_limit()

    if body.stream:
        return StreamingResponse(
            _ndjson_events(request, points, limit, enricher),
            media_type="application/x-ndjson",
            headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
        )

    result = await service.search_polygon(points, limit, enricher=enricher)
    return result.model_dump(mode="json")


@router.post("/search/geo/radius")
async def search_geo_radius(
    body: RadiusSearchRequest,
    api_key: str = Depends(auth_dependencies.require_api_key),
    enricher: RegistryEnricher = Depends(registry_service.enricher),
) -> dict:
    limit = body.limit or settings.radius_default_limit()
    result = await service.search_radius(
        body.longitude,
        body.latitude,
        body.radius_meters,
        limit,
        enricher=enricher,
    )
    return result.model_dump(mode="json")


@router.get("/search/geo/stats")
async def geo_stats(api_key: str = Depends(auth_dependencies.require_api_key)) -> dict:
    try:
        return await repository.geo_stats()
    except GeoStoreError as exc:
        logger.error("geo_stats_failed error=%s", exc)
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=auth_dependencies.error_detail("Base de données indisponible", "GEO_STORE_ERROR", str(exc)),
        ) from exc
